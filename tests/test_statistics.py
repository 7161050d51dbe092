import math

import pytest

from log_odds_pipes.models import CountRecord
from log_odds_pipes.statistics import (
    InvalidInput,
    PriorMode,
    build_prior,
    compute_weighted_log_odds,
    resolve_prior_mode,
    validate_records,
)

MIRROR_TABLE = [
    ("A", "x", 30),
    ("A", "y", 10),
    ("B", "x", 10),
    ("B", "y", 30),
]


def by_pair(results):
    return {(r.group, r.feature): r for r in results}


def test_mirror_table_signs():
    """x is over-represented in A and y in B, with mirrored scores."""
    scores = {k: r.log_odds_weighted for k, r in by_pair(compute_weighted_log_odds(MIRROR_TABLE)).items()}

    assert scores[("A", "x")] > 0
    assert scores[("A", "y")] < 0
    assert scores[("B", "x")] < 0
    assert scores[("B", "y")] > 0

    assert scores[("A", "y")] == pytest.approx(-scores[("A", "x")])
    assert scores[("B", "x")] == pytest.approx(-scores[("B", "y")])
    assert scores[("B", "y")] == pytest.approx(scores[("A", "x")])


def test_mirror_table_exact_values():
    """Empirical prior gives pseudo-counts equal to the feature totals."""
    results = by_pair(compute_weighted_log_odds(MIRROR_TABLE, unweighted=True))

    # y_group = 30 + 40, other_group = 40 + 80 - 70, y_rest = 10 + 40, other_rest = 70
    delta = math.log(70 / 50) - math.log(50 / 70)
    variance = 1 / 70 + 1 / 50 + 1 / 50 + 1 / 70

    assert results[("A", "x")].log_odds == pytest.approx(delta)
    assert results[("A", "x")].log_odds_weighted == pytest.approx(delta / math.sqrt(variance))


def test_zero_counts_are_finite():
    records = [
        ("A", "x", 5),
        ("B", "x", 0),
        ("A", "y", 10),
        ("B", "y", 12),
        ("C", "y", 3),
    ]

    for uninformative in (False, True):
        results = compute_weighted_log_odds(records, uninformative=uninformative, unweighted=True)

        assert len(results) == len(records)
        for result in results:
            assert math.isfinite(result.log_odds_weighted)
            assert math.isfinite(result.log_odds)

        scores = by_pair(results)
        assert scores[("A", "x")].log_odds_weighted > 0
        assert scores[("B", "x")].log_odds_weighted < 0


def scores_while_varying(pair, counts, other_rows):
    group, feature = pair
    scores = []
    for count in counts:
        table = [(group, feature, count)] + other_rows
        scores.append(by_pair(compute_weighted_log_odds(table))[pair].log_odds_weighted)
    return scores


def assert_strictly_increasing(scores):
    for previous, current in zip(scores, scores[1:]):
        assert current > previous


def test_monotonic_in_own_count_over_represented():
    scores = scores_while_varying(("A", "x"), range(30, 41), MIRROR_TABLE[1:])

    assert scores[0] > 0
    assert_strictly_increasing(scores)


def test_monotonic_in_own_count_under_represented():
    others = [row for row in MIRROR_TABLE if row[:2] != ("A", "y")]
    scores = scores_while_varying(("A", "y"), range(0, 10), others)

    assert all(score < 0 for score in scores)
    assert_strictly_increasing(scores)


def test_monotonic_in_own_count_feature_in_one_group():
    scores = scores_while_varying(("A", "z"), range(1, 30), MIRROR_TABLE)

    assert_strictly_increasing(scores)


def test_uninformative_unweighted_converges_to_classical_log_odds():
    counts = {
        ("A", "x"): 3_000_000,
        ("A", "y"): 2_000_000,
        ("A", "z"): 5_000_000,
        ("B", "x"): 1_000_000,
        ("B", "y"): 4_000_000,
        ("B", "z"): 5_000_000,
    }
    records = [(g, f, n) for (g, f), n in counts.items()]

    results = compute_weighted_log_odds(records, uninformative=True, unweighted=True)

    group_totals = {"A": 10_000_000, "B": 10_000_000}
    for result in results:
        other = "B" if result.group == "A" else "A"
        n_group = counts[(result.group, result.feature)]
        n_other = counts[(other, result.feature)]
        classical = (
            math.log(n_group / (group_totals[result.group] - n_group))
            - math.log(n_other / (group_totals[other] - n_other))
        )
        assert result.log_odds == pytest.approx(classical, abs=1e-5)


def test_rare_features_pulled_towards_zero():
    """Same within-group proportions (3:1), very different feature totals."""
    records = [
        ("A", "common", 300),
        ("B", "common", 100),
        ("A", "rare", 3),
        ("B", "rare", 1),
        ("A", "filler", 697),
        ("B", "filler", 899),
    ]

    scores = by_pair(compute_weighted_log_odds(records))

    common = scores[("A", "common")].log_odds_weighted
    rare = scores[("A", "rare")].log_odds_weighted

    assert common > 0
    assert rare > 0
    assert abs(rare) < abs(common)


def test_transposed_table_gives_transposed_result():
    records = [
        ("A", "x", 12),
        ("A", "y", 5),
        ("B", "x", 7),
        ("B", "y", 20),
    ]
    transposed = [(feature, group, count) for group, feature, count in records]

    results = by_pair(compute_weighted_log_odds(records, uninformative=True, unweighted=True))
    transposed_results = by_pair(
        compute_weighted_log_odds(transposed, uninformative=True, unweighted=True)
    )

    for (group, feature), result in results.items():
        other = transposed_results[(feature, group)]
        assert other.log_odds == pytest.approx(result.log_odds)
        assert other.log_odds_weighted == pytest.approx(result.log_odds_weighted)


def test_results_are_deterministic_and_in_input_order():
    records = [
        ("B", "y", 3),
        ("A", "x", 4),
        ("A", "y", 9),
        ("B", "x", 1),
        ("C", "z", 7),
        ("A", "z", 2),
    ]

    first = compute_weighted_log_odds(records, unweighted=True)
    second = compute_weighted_log_odds(list(records), unweighted=True)

    assert first == second
    assert [(r.group, r.feature, r.count) for r in first] == records


def test_accepts_count_records():
    records = [CountRecord(group=g, feature=f, count=n) for g, f, n in MIRROR_TABLE]

    assert compute_weighted_log_odds(records) == compute_weighted_log_odds(MIRROR_TABLE)


def test_log_odds_only_reported_when_unweighted():
    weighted = compute_weighted_log_odds(MIRROR_TABLE)
    unweighted = compute_weighted_log_odds(MIRROR_TABLE, unweighted=True)

    assert all(r.log_odds is None for r in weighted)
    assert all(r.score == r.log_odds_weighted for r in weighted)
    assert all(r.score == r.log_odds for r in unweighted)

    for w, u in zip(weighted, unweighted):
        assert w.log_odds_weighted == u.log_odds_weighted


def test_prior_by_name_matches_flag():
    assert compute_weighted_log_odds(MIRROR_TABLE, prior="uninformative") == (
        compute_weighted_log_odds(MIRROR_TABLE, uninformative=True)
    )
    assert compute_weighted_log_odds(MIRROR_TABLE, prior=PriorMode.EMPIRICAL) == (
        compute_weighted_log_odds(MIRROR_TABLE)
    )


def test_alpha_budget_changes_empirical_scores_only():
    default = compute_weighted_log_odds(MIRROR_TABLE)
    budget = compute_weighted_log_odds(MIRROR_TABLE, alpha_budget=8)

    assert default != budget

    assert compute_weighted_log_odds(MIRROR_TABLE, uninformative=True, alpha_budget=8) == (
        compute_weighted_log_odds(MIRROR_TABLE, uninformative=True)
    )


@pytest.mark.parametrize(
    "records",
    [
        [],
        [("A", "x", -1), ("A", "y", 2)],
        [("A", "x", 1), ("A", "x", 2), ("B", "y", 3)],
        [("A", "x", "3"), ("B", "y", 1)],
        [("A", "x", float("nan")), ("B", "y", 1)],
        [("A", "x", True), ("B", "y", 1)],
        [("A", "x")],
        [("A", "x", 3), ("B", "x", 4)],
        [("A", "x", 0), ("B", "y", 0)],
    ],
    ids=[
        "empty",
        "negative",
        "duplicate",
        "string",
        "nan",
        "bool",
        "not-a-triple",
        "single-feature",
        "all-zero",
    ],
)
def test_invalid_tables(records):
    with pytest.raises(InvalidInput):
        compute_weighted_log_odds(records)


def test_unknown_prior_mode():
    with pytest.raises(InvalidInput, match="Unknown prior mode"):
        compute_weighted_log_odds(MIRROR_TABLE, prior="jeffreys")


def test_conflicting_prior_options():
    with pytest.raises(InvalidInput):
        compute_weighted_log_odds(MIRROR_TABLE, uninformative=True, prior="empirical")


@pytest.mark.parametrize("alpha_budget", [0, -1.5, float("nan"), float("inf"), 5e-324])
def test_alpha_budget_must_be_positive(alpha_budget):
    with pytest.raises(InvalidInput):
        compute_weighted_log_odds(MIRROR_TABLE, alpha_budget=alpha_budget)


def test_tiny_alpha_budget_with_zero_counts():
    records = MIRROR_TABLE + [("A", "z", 5), ("B", "z", 0)]

    with pytest.raises(InvalidInput, match="underflows"):
        compute_weighted_log_odds(records, alpha_budget=5e-324)


def test_unobserved_feature_needs_uninformative_prior():
    records = MIRROR_TABLE + [("A", "z", 0), ("B", "z", 0)]

    with pytest.raises(InvalidInput, match="never observed"):
        compute_weighted_log_odds(records)

    results = compute_weighted_log_odds(records, uninformative=True)
    assert all(math.isfinite(r.log_odds_weighted) for r in results)


def test_invalid_input_is_value_error():
    assert issubclass(InvalidInput, ValueError)


def test_validate_records_normalises_tuples():
    table = validate_records([("A", "x", 1), CountRecord("B", "y", 2)])

    assert table == [CountRecord("A", "x", 1), CountRecord("B", "y", 2)]


def test_build_prior_empirical_defaults_to_feature_totals():
    prior = build_prior({"x": 40, "y": 60})

    assert prior["x"] == pytest.approx(40)
    assert prior["y"] == pytest.approx(60)


def test_build_prior_scales_with_budget():
    prior = build_prior({"x": 1, "y": 3}, alpha_budget=8)

    assert prior == {"x": pytest.approx(2), "y": pytest.approx(6)}


def test_build_prior_uninformative_ignores_data():
    assert build_prior({"x": 1, "y": 300}, PriorMode.UNINFORMATIVE) == {"x": 1.0, "y": 1.0}


def test_build_prior_recomputed_per_table():
    assert build_prior({"x": 1, "y": 1}) != build_prior({"x": 1, "y": 9})


def test_resolve_prior_mode():
    assert resolve_prior_mode() is PriorMode.EMPIRICAL
    assert resolve_prior_mode(uninformative=True) is PriorMode.UNINFORMATIVE
    assert resolve_prior_mode("uninformative") is PriorMode.UNINFORMATIVE
