"""Data models for the Log-Odds Pipes project.

This module contains dataclasses representing the core domain objects.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class CountRecord:
    """A pre-aggregated count for one (group, feature) pair.

    Attributes:
        group: The group the count belongs to (e.g., a book, a speaker, a decade)
        feature: The feature being counted (e.g., a word)
        count: Number of occurrences of the feature within the group. May be
            fractional for weighted tables (e.g. survey weights), but is
            never negative.
    """
    group: str
    feature: str
    count: int | float


@dataclass(frozen=True)
class LogOddsResult:
    """Weighted log-odds of a feature within a group.

    Attributes:
        group: The group being compared against all other groups
        feature: The feature being compared
        count: Raw count of the feature in the group
        log_odds: The posterior log-odds ratio, only set for unweighted runs
        log_odds_weighted: The log-odds ratio divided by its standard deviation
            (a z-score: positive = over-represented in the group)
    """
    group: str
    feature: str
    count: int | float
    log_odds: float | None
    log_odds_weighted: float

    @property
    def score(self) -> float:
        """The principal column: raw log-odds if present, else the z-score."""
        if self.log_odds is not None:
            return self.log_odds
        return self.log_odds_weighted


@dataclass
class GroupRanking:
    """The most distinctive features of a single group.

    Attributes:
        group: The group
        top_features: Results for the group, highest score first
    """
    group: str
    top_features: list[LogOddsResult]
