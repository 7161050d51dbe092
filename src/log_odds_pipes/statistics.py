"""Statistical functions for comparing feature usage across groups.

This module implements the weighted log-odds of Monroe, Colaresi, and Quinn
(2008), "Fightin' Words: Lexical Feature Selection and Evaluation for
Identifying the Content of Political Conflict", generalised from a single
focal/background pair to any number of groups: every group is compared
against all other groups combined.

Everything here is a pure function of the count table it is given. The prior
is rebuilt from the table on every call and never cached between calls.
"""

import math
import sys
from collections.abc import Iterable
from enum import Enum
from numbers import Real

from log_odds_pipes.models import CountRecord, LogOddsResult


class InvalidInput(ValueError):
    """Raised when a count table or its options cannot be scored."""


class PriorMode(str, Enum):
    """Dirichlet prior used to regularise the log-odds.

    EMPIRICAL: pseudo-counts proportional to each feature's share of the table
    UNINFORMATIVE: one pseudo-count per feature, regardless of the data
    """
    EMPIRICAL = "empirical"
    UNINFORMATIVE = "uninformative"


def resolve_prior_mode(
    prior: str | PriorMode | None = None, uninformative: bool = False
) -> PriorMode:
    """Turn the user facing prior options into a PriorMode.

    Args:
        prior: Name of the prior ("empirical" or "uninformative"), or None to
            decide from the `uninformative` flag
        uninformative: Shorthand for prior="uninformative"

    Returns:
        The selected PriorMode

    Raises:
        InvalidInput: If the prior name is unknown, or contradicts the flag.
    """
    if prior is None:
        return PriorMode.UNINFORMATIVE if uninformative else PriorMode.EMPIRICAL

    try:
        mode = PriorMode(prior)
    except ValueError as e:
        valid = ", ".join(m.value for m in PriorMode)
        raise InvalidInput(f"Unknown prior mode {prior!r}, expected one of: {valid}") from e

    if uninformative and mode is not PriorMode.UNINFORMATIVE:
        raise InvalidInput(f"uninformative=True conflicts with prior={mode.value!r}")

    return mode


def validate_records(
    records: Iterable[CountRecord | tuple[str, str, int | float]],
) -> list[CountRecord]:
    """Normalise and validate a count table.

    Accepts CountRecord objects or plain (group, feature, count) triples.

    Returns:
        The table as a list of CountRecord objects, in input order

    Raises:
        InvalidInput: If the table is empty, a count is negative, not a finite
            number, or a (group, feature) pair appears more than once.
    """
    table: list[CountRecord] = []
    seen: set[tuple[str, str]] = set()

    for record in records:
        if not isinstance(record, CountRecord):
            try:
                group, feature, count = record
            except (TypeError, ValueError) as e:
                raise InvalidInput(
                    f"Expected a (group, feature, count) triple, got {record!r}"
                ) from e
            record = CountRecord(group=group, feature=feature, count=count)

        count = record.count
        if isinstance(count, bool) or not isinstance(count, Real):
            raise InvalidInput(
                f"Count for ({record.group}, {record.feature}) is not a number: {count!r}"
            )
        if not math.isfinite(count):
            raise InvalidInput(
                f"Count for ({record.group}, {record.feature}) is not finite: {count}"
            )
        if count < 0:
            raise InvalidInput(
                f"Count for ({record.group}, {record.feature}) is negative: {count}"
            )

        key = (record.group, record.feature)
        if key in seen:
            raise InvalidInput(
                f"Duplicate pair ({record.group}, {record.feature}), "
                "aggregate the counts before scoring"
            )
        seen.add(key)

        table.append(record)

    if not table:
        raise InvalidInput("Count table is empty")

    return table


def build_prior(
    feature_totals: dict[str, float],
    mode: str | PriorMode = PriorMode.EMPIRICAL,
    alpha_budget: float | None = None,
) -> dict[str, float]:
    """Build the Dirichlet prior (pseudo-count per feature) for a count table.

    Args:
        feature_totals: Total count of each feature across all groups
        mode: Which prior to build
        alpha_budget: Total pseudo-count mass of the empirical prior (alpha_0).
            Defaults to the grand total, making each pseudo-count equal to the
            feature's own total. Ignored by the uninformative prior.

    Returns:
        Mapping of feature to its (positive) pseudo-count

    Raises:
        InvalidInput: If the mode is unknown, the budget is not positive, or
            the empirical prior would give a feature a zero pseudo-count.
    """
    mode = resolve_prior_mode(mode)

    if alpha_budget is not None and not (math.isfinite(alpha_budget) and alpha_budget > 0):
        raise InvalidInput(f"alpha_budget must be a positive finite number, got {alpha_budget}")

    if mode is PriorMode.UNINFORMATIVE:
        return {feature: 1.0 for feature in feature_totals}

    grand_total = math.fsum(feature_totals.values())
    if grand_total <= 0:
        raise InvalidInput("Count table has no observations to build a prior from")

    budget = grand_total if alpha_budget is None else alpha_budget

    prior: dict[str, float] = {}
    for feature, total in feature_totals.items():
        if total <= 0:
            raise InvalidInput(
                f"Feature {feature!r} is never observed, its empirical prior would be zero"
            )
        alpha = budget * (total / grand_total)
        if not alpha >= sys.float_info.min:
            raise InvalidInput(
                f"Pseudo-count of feature {feature!r} underflows to zero, increase alpha_budget"
            )
        prior[feature] = alpha

    return prior


def compute_weighted_log_odds(
    records: Iterable[CountRecord | tuple[str, str, int | float]],
    uninformative: bool = False,
    unweighted: bool = False,
    *,
    prior: str | PriorMode | None = None,
    alpha_budget: float | None = None,
) -> list[LogOddsResult]:
    """Calculate weighted log-odds for every (group, feature) pair.

    For feature i in group j, with pseudo-count a_i from the prior, the
    posterior odds of i within j are compared to the posterior odds of i in
    all other groups pooled together:

        y_ij   = n_ij + a_i
        y_i~j  = (n_i. - n_ij) + a_i
        delta  = log(y_ij / (n_.j + a_. - y_ij))
               - log(y_i~j / (n_.. - n_.j + a_. - y_i~j))

    The weighted log-odds is delta divided by its standard deviation, which
    is estimated by the sum of reciprocals of the four posterior cells.

    Args:
        records: Count table as CountRecord objects or (group, feature, count)
            triples. Each pair must appear at most once.
        uninformative: Use a flat prior instead of the empirical one
        unweighted: Also report the raw log-odds ratio (delta)
        prior: Name of the prior, alternative to the `uninformative` flag
        alpha_budget: Total pseudo-count mass of the empirical prior

    Returns:
        One LogOddsResult per input row, in input order. Results are NOT
        sorted - see transform.rank_features.

    Raises:
        InvalidInput: If the table or options are invalid. Nothing is
            computed before the whole table has been validated.

    Example:
        >>> results = compute_weighted_log_odds([
        ...     ("A", "x", 30), ("A", "y", 10), ("B", "x", 10), ("B", "y", 30),
        ... ])
        >>> results[0].log_odds_weighted > 0
        True
    """
    mode = resolve_prior_mode(prior, uninformative)
    table = validate_records(records)

    feature_counts: dict[str, list[float]] = {}
    group_counts: dict[str, list[float]] = {}
    for record in table:
        feature_counts.setdefault(record.feature, []).append(record.count)
        group_counts.setdefault(record.group, []).append(record.count)

    feature_totals = {f: math.fsum(counts) for f, counts in feature_counts.items()}
    group_totals = {g: math.fsum(counts) for g, counts in group_counts.items()}
    grand_total = math.fsum(record.count for record in table)

    if grand_total <= 0:
        raise InvalidInput("Count table has no observations, all counts are zero")

    # With a single feature the "every other feature" cells are empty
    if len(feature_totals) < 2:
        raise InvalidInput(
            f"Need at least two distinct features to compare, got {list(feature_totals)}"
        )

    alphas = build_prior(feature_totals, mode, alpha_budget)
    alpha_total = math.fsum(alphas.values())
    if not math.isfinite(alpha_total):
        raise InvalidInput(f"Total pseudo-count overflows, got {alpha_total}")

    results = []

    for record in table:
        alpha = alphas[record.feature]
        group_total = group_totals[record.group]

        # Posterior counts of this feature, in the group and everywhere else
        y_group = record.count + alpha
        y_rest = (feature_totals[record.feature] - record.count) + alpha

        # Posterior counts of all other features, in the group and everywhere else
        other_group = group_total + alpha_total - y_group
        other_rest = (grand_total - group_total) + alpha_total - y_rest

        delta = (math.log(y_group) - math.log(other_group)) - (
            math.log(y_rest) - math.log(other_rest)
        )

        variance = 1 / y_group + 1 / other_group + 1 / y_rest + 1 / other_rest
        z_score = delta / math.sqrt(variance)

        results.append(LogOddsResult(
            group=record.group,
            feature=record.feature,
            count=record.count,
            log_odds=delta if unweighted else None,
            log_odds_weighted=z_score,
        ))

    return results
