from brawltrack.normalization import (
    parse_numeric_score,
    rank_label_from_score,
    rank_tier_floor_from_label,
    sanitize_ranked_score,
    tier_ladder,
)


def test_parse_numeric_score_accepts_loose_formats():
    assert parse_numeric_score("1 234") == 1234
    assert parse_numeric_score("12,500") == 12500
    assert parse_numeric_score(" 8250 ") == 8250
    assert parse_numeric_score("62.5") == 62.5
    assert parse_numeric_score(7300) == 7300


def test_parse_numeric_score_invalid_values():
    assert parse_numeric_score("") == 0
    assert parse_numeric_score("n/a") == 0
    assert parse_numeric_score(None) == 0
    assert parse_numeric_score(True) == 0
    assert parse_numeric_score(float("nan")) == 0
    assert parse_numeric_score("", strict=True) is None
    assert parse_numeric_score({"value": 3}, strict=True) is None


def test_sanitize_ranked_score_bounds():
    assert sanitize_ranked_score(8500) == 8500
    assert sanitize_ranked_score(20000) == 20000
    assert sanitize_ranked_score(25000) is None
    assert sanitize_ranked_score(0) is None
    assert sanitize_ranked_score(-40) is None
    assert sanitize_ranked_score(None) is None


def test_tier_floors_are_monotonic_within_and_across_families():
    gold_iii = rank_tier_floor_from_label("Gold III")
    gold_i = rank_tier_floor_from_label("Gold I")
    silver_iii = rank_tier_floor_from_label("Silver III")
    assert gold_iii > gold_i > silver_iii

    floors = [floor for _label, floor in tier_ladder()]
    assert floors == sorted(floors)
    assert len(set(floors)) == len(floors)


def test_tier_floor_highest_family_is_pro():
    pro = rank_tier_floor_from_label("Pro")
    assert pro == 11250
    assert pro == max(floor for _label, floor in tier_ladder())


def test_tier_floor_reads_levels_and_localized_names():
    assert rank_tier_floor_from_label("Legendary III") == 7500
    assert rank_tier_floor_from_label("legendary") == 6000
    assert rank_tier_floor_from_label("Mythique 2") == 5000
    assert rank_tier_floor_from_label("Argent II") == 1000
    assert rank_tier_floor_from_label("Diamant III") == 4000
    assert rank_tier_floor_from_label("Bronze I") == 1


def test_tier_floor_unknown_label_is_zero():
    assert rank_tier_floor_from_label("Wooden Spoon") == 0
    assert rank_tier_floor_from_label("") == 0
    assert rank_tier_floor_from_label(None) == 0
    assert rank_tier_floor_from_label(8250) == 0


def test_rank_label_from_score():
    assert rank_label_from_score(0) == "Unranked"
    assert rank_label_from_score(None) == "Unranked"
    assert rank_label_from_score(1) == "Bronze I"
    assert rank_label_from_score(8250) == "Masters I"
    assert rank_label_from_score(8249) == "Legendary III"
    assert rank_label_from_score("12,000") == "Pro"
