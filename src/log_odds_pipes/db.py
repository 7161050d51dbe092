import sqlite3
from pathlib import Path

from log_odds_pipes.models import CountRecord, GroupRanking, LogOddsResult

COUNT_TABLE = """
    CREATE TABLE IF NOT EXISTS count_table (
        group_name TEXT NOT NULL,
        feature TEXT NOT NULL,
        count REAL NOT NULL,
        PRIMARY KEY (group_name, feature)
    )
"""

LOG_ODDS_TABLE = """
    CREATE TABLE IF NOT EXISTS log_odds (
        group_name TEXT NOT NULL,
        feature TEXT NOT NULL,
        count REAL NOT NULL,
        log_odds REAL,
        log_odds_weighted REAL NOT NULL,
        rank INTEGER,
        PRIMARY KEY (group_name, feature)
    )
"""


def get_connection(db_path: str | Path) -> sqlite3.Connection:
    """Get a connection to the database.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(path)


def ensure_count_table(db_path: str | Path) -> None:
    """Ensure the count_table table exists with the correct schema.

    Args:
        db_path: Path to the SQLite database file
    """
    with get_connection(db_path) as conn:
        conn.execute(COUNT_TABLE)
        conn.commit()


def replace_count_table(db_path: str | Path, records: list[CountRecord]) -> None:
    """Replace the whole count table in the database.

    Args:
        db_path: Path to the SQLite database file
        records: List of CountRecord objects

    This atomically replaces the entire table contents.
    """
    ensure_count_table(db_path)

    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM count_table")
        conn.executemany(
            "INSERT INTO count_table (group_name, feature, count) VALUES (?, ?, ?)",
            [(r.group, r.feature, r.count) for r in records],
        )
        conn.commit()


def read_count_table(db_path: str | Path) -> list[CountRecord]:
    """Read the count table, in insertion order.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        List of CountRecord objects
    """
    ensure_count_table(db_path)

    with get_connection(db_path) as conn:
        cursor = conn.execute(
            "SELECT group_name, feature, count FROM count_table ORDER BY rowid"
        )
        rows = cursor.fetchall()

    # Counts are stored as REAL, give whole numbers back as int
    return [
        CountRecord(
            group=group,
            feature=feature,
            count=int(count) if float(count).is_integer() else count,
        )
        for group, feature, count in rows
    ]


def ensure_log_odds_table(db_path: str | Path) -> None:
    """Ensure the log_odds table exists with the correct schema.

    Args:
        db_path: Path to the SQLite database file
    """
    with get_connection(db_path) as conn:
        conn.execute(LOG_ODDS_TABLE)
        conn.commit()


def replace_log_odds(
    db_path: str | Path,
    results: list[LogOddsResult],
    rankings: list[GroupRanking] | None = None,
) -> None:
    """Replace all weighted log-odds results in the database.

    Args:
        db_path: Path to the SQLite database file
        results: List of LogOddsResult objects, one per (group, feature)
        rankings: Optional top features per group; ranked rows get their
            1-based position stored in the rank column, all others NULL

    This atomically replaces the entire table contents.
    """
    ensure_log_odds_table(db_path)

    ranks: dict[tuple[str, str], int] = {}
    for ranking in rankings or []:
        for rank, result in enumerate(ranking.top_features, start=1):
            ranks[(result.group, result.feature)] = rank

    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM log_odds")
        conn.executemany(
            """INSERT INTO log_odds
               (group_name, feature, count, log_odds, log_odds_weighted, rank)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (
                    r.group,
                    r.feature,
                    r.count,
                    r.log_odds,
                    r.log_odds_weighted,
                    ranks.get((r.group, r.feature)),
                )
                for r in results
            ],
        )
        conn.commit()


def read_top_features(db_path: str | Path, group: str) -> list[tuple[str, float]]:
    """Read the ranked features of one group.

    Args:
        db_path: Path to the SQLite database file
        group: The group to read

    Returns:
        List of (feature, log_odds_weighted) tuples ordered by rank
    """
    ensure_log_odds_table(db_path)

    with get_connection(db_path) as conn:
        cursor = conn.execute(
            """SELECT feature, log_odds_weighted FROM log_odds
               WHERE group_name = ? AND rank IS NOT NULL
               ORDER BY rank""",
            (group,),
        )
        return cursor.fetchall()
