from services.points_generate.app.cleaner import is_statement  # type: ignore
from services.points_generate.app.extractor import (  # type: ignore
    bullet_candidates,
    extract_points,
    numbered_candidates,
)


def test_numbered_list_is_extracted_without_markers() -> None:
    raw = "1. reduces emissions\n2. lowers cost\n3. is renewable"
    points = extract_points(raw, "solar energy", 3)
    assert points == ["Reduces emissions.", "Lowers cost.", "Is renewable."]
    assert all(is_statement(p) for p in points)


def test_numbered_candidates_split_inline_markers_but_not_decimals() -> None:
    raw = "1. costs fell 3.5 percent last year 2. panels last decades"
    assert numbered_candidates(raw) == [
        "costs fell 3.5 percent last year",
        "panels last decades",
    ]


def test_extraction_stops_at_expected_count() -> None:
    raw = (
        "1. reduces emissions\n2. lowers cost\n3. is renewable\n"
        "4. creates local jobs\n5. improves energy security"
    )
    points = extract_points(raw, "solar energy", 2)
    assert points == ["Reduces emissions.", "Lowers cost."]


def test_bullet_list_is_used_when_no_numbers() -> None:
    raw = (
        "Benefits:\n- cuts household energy bills\n"
        "- creates local jobs quickly\n* improves air quality a lot"
    )
    assert bullet_candidates(raw) == [
        "cuts household energy bills",
        "creates local jobs quickly",
        "improves air quality a lot",
    ]
    points = extract_points(raw, "solar energy", 3)
    assert points == [
        "Cuts household energy bills.",
        "Creates local jobs quickly.",
        "Improves air quality a lot.",
    ]


def test_bullet_candidates_empty_without_bullets() -> None:
    assert bullet_candidates("A well-known plain sentence about things.") == []


def test_sentence_split_fallback_replaces_pronouns() -> None:
    raw = (
        "Solar panels convert sunlight into electricity. "
        "They also reduce grid dependence! Short."
    )
    points = extract_points(raw, "solar panels", 3)
    assert points == [
        "Solar panels convert sunlight into electricity.",
        "Solar panels also reduce grid dependence.",
    ]


def test_sentence_split_skips_near_duplicates() -> None:
    raw = "1. reduces emissions a lot\nReduces emissions a lot overall today."
    points = extract_points(raw, "solar energy", 3)
    assert points == ["Reduces emissions a lot."]


def test_corrupt_candidates_do_not_count() -> None:
    raw = "1. undefined undefined value\n2. makes homes warmer in winter"
    points = extract_points(raw, "heat pumps", 2)
    assert points == ["Makes homes warmer in winter."]


def test_empty_input_yields_nothing() -> None:
    assert extract_points("", "solar energy", 3) == []
    assert extract_points("\n\n\n", "solar energy", 3) == []
    assert extract_points("1. reduces emissions", "solar energy", 0) == []


def test_list_items_sharing_a_prefix_are_all_kept() -> None:
    raw = "1. reduces emissions from power plants\n2. reduces emissions from cars"
    points = extract_points(raw, "solar energy", 2)
    assert points == [
        "Reduces emissions from power plants.",
        "Reduces emissions from cars.",
    ]


def test_digit_first_items_are_skipped() -> None:
    raw = "1. 2020 saw record installs\n2. lowers monthly energy bills"
    points = extract_points(raw, "solar energy", 2)
    assert points == ["Lowers monthly energy bills."]
    assert all(is_statement(p) for p in points)
