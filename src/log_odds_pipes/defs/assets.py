import math

import dagster as dg
from pydantic import Field

from log_odds_pipes.defs.resources import AnalyticsDB
from log_odds_pipes.extract import (
    DEFAULT_COUNT_COLUMN,
    DEFAULT_FEATURE_COLUMN,
    DEFAULT_GROUP_COLUMN,
    download_count_csv,
    load_count_csv,
    load_observations_csv,
    load_texts,
)
from log_odds_pipes.models import CountRecord
from log_odds_pipes.statistics import PriorMode, compute_weighted_log_odds
from log_odds_pipes.transform import (
    aggregate_counts,
    count_words,
    merge_counts,
    rank_features,
    read_stopwords,
)


# ==============================================================================
# Source Domain: Count tables from CSV files, URLs, observations or raw texts
# ==============================================================================


class SourceConfig(dg.Config):
    """Configuration for loading the count table.

    Exactly one of url, path, observations_path and text_dir must be set.
    """

    url: str | None = Field(
        default=None,
        description="URL of a CSV count table to download",
    )
    path: str | None = Field(
        default=None,
        description="Path of a local CSV count table",
    )
    observations_path: str | None = Field(
        default=None,
        description="Path of a local CSV with one (group, feature) observation per row",
    )
    text_dir: str | None = Field(
        default=None,
        description="Directory of {group}.txt files to count words in",
    )
    group_column: str = Field(
        default=DEFAULT_GROUP_COLUMN,
        description="CSV column holding the group",
    )
    feature_column: str = Field(
        default=DEFAULT_FEATURE_COLUMN,
        description="CSV column holding the feature",
    )
    count_column: str = Field(
        default=DEFAULT_COUNT_COLUMN,
        description="CSV column holding the count",
    )
    remove_stopwords: bool = Field(
        default=True,
        description="Leave stopwords out when counting words in texts",
    )


@dg.asset(io_manager_key="count_table_csv_io")
async def source_counts(
    context: dg.AssetExecutionContext, config: SourceConfig
) -> list[CountRecord]:
    """Load the count table to analyse and aggregate duplicate pairs.

    Stored as source_counts.csv in the XDG data directory.
    """
    sources = [
        s for s in (config.url, config.path, config.observations_path, config.text_dir) if s
    ]
    if len(sources) != 1:
        raise ValueError(
            "Set exactly one of url, path, observations_path and text_dir in the source config, "
            f"got {len(sources)}"
        )

    columns = {
        "group_column": config.group_column,
        "feature_column": config.feature_column,
        "count_column": config.count_column,
    }

    if config.url:
        context.log.info(f"Downloading count table from {config.url}")
        records = await download_count_csv(config.url, **columns)
    elif config.path:
        context.log.info(f"Reading count table from {config.path}")
        records = load_count_csv(config.path, **columns)
    elif config.observations_path:
        context.log.info(f"Counting observations from {config.observations_path}")
        observations = load_observations_csv(
            config.observations_path,
            group_column=config.group_column,
            feature_column=config.feature_column,
        )
        records = aggregate_counts(observations)
    else:
        context.log.info(f"Counting words in texts from {config.text_dir}")
        stopwords = read_stopwords() if config.remove_stopwords else None
        records = count_words(load_texts(config.text_dir), stopwords=stopwords)

    if not records:
        raise ValueError("Source contains no rows, inspect the source for changes")

    merged = merge_counts(records)
    if len(merged) < len(records):
        context.log.info(f"Merged {len(records) - len(merged)} duplicate rows")

    context.log.info(f"Found {len(merged)} group-feature pairs")
    return merged


@dg.asset_check(asset=source_counts)
def source_counts_comparable(
    _: dg.AssetCheckExecutionContext, source_counts: list[CountRecord]
) -> dg.AssetCheckResult:
    """Check that the source has at least two groups and two features."""
    groups = {r.group for r in source_counts}
    features = {r.feature for r in source_counts}
    passed = len(groups) >= 2 and len(features) >= 2

    return dg.AssetCheckResult(
        passed=passed,
        description=f"Found {len(groups)} groups and {len(features)} features"
        if passed
        else f"Need at least 2 groups and 2 features, found {len(groups)} and {len(features)}",
        metadata={"group_count": len(groups), "feature_count": len(features)},
    )


@dg.asset(
    auto_materialize_policy=dg.AutoMaterializePolicy.eager(),
)
def count_table(
    context: dg.AssetExecutionContext,
    analytics_db: AnalyticsDB,
    source_counts: list[CountRecord],
) -> None:
    """Store the count table in the SQLite database.

    This table is atomically replaced each time the asset is materialized.

    Table: count_table (group_name, feature, count)
    """
    context.log.info(f"Storing {len(source_counts)} rows to database")
    analytics_db.replace_count_table(source_counts)
    context.log.info(f"Stored count table to {analytics_db.db_path}")


@dg.asset_check(asset=count_table)
def count_table_stored_correctly(
    _: dg.AssetCheckExecutionContext, analytics_db: AnalyticsDB
) -> dg.AssetCheckResult:
    """Check that the count table was stored with valid counts."""
    with analytics_db.get_connection() as conn:
        cursor = conn.execute("SELECT COUNT(*) FROM count_table")
        db_count = cursor.fetchone()[0]

        cursor = conn.execute("SELECT COUNT(*) FROM count_table WHERE count < 0")
        negative_counts = cursor.fetchone()[0]

    passed = db_count > 0 and negative_counts == 0

    issues = []
    if db_count == 0:
        issues.append("Count table is empty")
    if negative_counts:
        issues.append(f"{negative_counts} rows with negative counts")

    return dg.AssetCheckResult(
        passed=passed,
        description=f"Stored {db_count:,} rows correctly"
        if passed
        else "; ".join(issues),
        metadata={"db_count": db_count, "negative_counts": negative_counts},
    )


# ==============================================================================
# Comparative Analysis Domain: Weighted log-odds per group
# ==============================================================================


class LogOddsConfig(dg.Config):
    """Configuration for the weighted log-odds computation."""

    prior: str = Field(
        default=PriorMode.EMPIRICAL.value,
        description="Dirichlet prior: 'empirical' (from feature frequencies) or 'uninformative'",
    )
    unweighted: bool = Field(
        default=False,
        description="Also store the raw log-odds ratio next to the z-score",
    )
    alpha_budget: float | None = Field(
        default=None,
        description="Total pseudo-count of the empirical prior, defaults to the grand total",
    )
    top_n: int = Field(
        default=20,
        description="Number of top distinctive features to rank per group",
    )


@dg.asset(
    deps=[dg.AssetDep("count_table")],
    auto_materialize_policy=dg.AutoMaterializePolicy.eager(),
)
def log_odds(
    context: dg.AssetExecutionContext,
    analytics_db: AnalyticsDB,
    config: LogOddsConfig,
) -> None:
    """Compute weighted log-odds for every group-feature pair and store in SQLite.

    Implements the "Fightin' Words" algorithm from Monroe et al. (2008), with
    each group compared to all other groups combined.

    Table: log_odds (group_name, feature, count, log_odds, log_odds_weighted, rank)
    where rank is the position among the top N features of the group.
    """
    context.log.info(
        f"Computing weighted log-odds (prior={config.prior}, unweighted={config.unweighted}, "
        f"alpha_budget={config.alpha_budget}, top_n={config.top_n})"
    )

    records = analytics_db.read_count_table()
    context.log.info(f"Loaded {len(records)} group-feature pairs from database")

    results = compute_weighted_log_odds(
        records,
        unweighted=config.unweighted,
        prior=config.prior,
        alpha_budget=config.alpha_budget,
    )
    rankings = rank_features(results, top_n=config.top_n)
    context.log.info(f"Ranked features for {len(rankings)} groups")

    analytics_db.replace_log_odds(results, rankings)
    context.log.info(f"Stored {len(results)} results to {analytics_db.db_path}")

    # Log sample results
    for ranking in rankings[:3]:
        if ranking.top_features:
            top = ranking.top_features[0]
            context.log.info(
                f"  {ranking.group}: '{top.feature}' (score: {top.score:.3f})"
            )


@dg.asset_check(asset=log_odds)
def log_odds_all_finite(
    _: dg.AssetCheckExecutionContext, analytics_db: AnalyticsDB
) -> dg.AssetCheckResult:
    """Check that every stored weighted log-odds is a finite number."""
    with analytics_db.get_connection() as conn:
        cursor = conn.execute("SELECT log_odds_weighted FROM log_odds")
        scores = [row[0] for row in cursor.fetchall()]

    non_finite = sum(1 for score in scores if score is None or not math.isfinite(score))
    passed = bool(scores) and non_finite == 0

    if not scores:
        description = "No rows found in log_odds table"
    elif passed:
        description = (
            f"All {len(scores)} scores finite, range=[{min(scores):.3f}, {max(scores):.3f}]"
        )
    else:
        description = f"{non_finite} of {len(scores)} scores are not finite"

    return dg.AssetCheckResult(
        passed=passed,
        description=description,
        metadata={"total_rows": len(scores), "non_finite": non_finite},
    )


@dg.asset_check(asset=log_odds)
def log_odds_covers_count_table(
    _: dg.AssetCheckExecutionContext, analytics_db: AnalyticsDB
) -> dg.AssetCheckResult:
    """Check that there is exactly one result per row of the count table."""
    with analytics_db.get_connection() as conn:
        cursor = conn.execute("SELECT COUNT(*) FROM count_table")
        count_rows = cursor.fetchone()[0]

        cursor = conn.execute("SELECT COUNT(*) FROM log_odds")
        result_rows = cursor.fetchone()[0]

        cursor = conn.execute(
            """SELECT COUNT(*) FROM count_table c
               LEFT JOIN log_odds l
               ON c.group_name = l.group_name AND c.feature = l.feature
               WHERE l.feature IS NULL"""
        )
        missing = cursor.fetchone()[0]

    passed = count_rows == result_rows and missing == 0

    return dg.AssetCheckResult(
        passed=passed,
        description=f"Scored all {count_rows} rows of the count table"
        if passed
        else f"{missing} pairs missing, {result_rows} results for {count_rows} rows",
        metadata={
            "count_rows": count_rows,
            "result_rows": result_rows,
            "missing": missing,
        },
    )
