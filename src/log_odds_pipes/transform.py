import re
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

from log_odds_pipes.models import CountRecord, GroupRanking, LogOddsResult


def normalize_text(text: str) -> str:
    """Normalize text for word counting.

    Applies transformations:
    1. Remove acute (´) and grave (`) accents: "é" → "e", "è" → "e"
    2. Convert to lowercase

    Other letters (including å, æ, ø, ü) are left untouched.

    Args:
        text: Raw text to normalize

    Returns:
        Normalized text

    Examples:
        >>> normalize_text("Café Élan")
        'cafe elan'
    """
    accent_map = {
        "á": "a",
        "à": "a",
        "é": "e",
        "è": "e",
        "í": "i",
        "ì": "i",
        "ó": "o",
        "ò": "o",
        "ú": "u",
        "ù": "u",
        "ý": "y",
        "ỳ": "y",
    }

    text = text.lower()
    for accented, base in accent_map.items():
        text = text.replace(accented, base)

    return text


def read_stopwords(path: str | Path | None = None) -> set[str]:
    """Read stopwords from a text file with one word per line.

    Args:
        path: Stopword file, defaults to the list bundled with the package

    Returns:
        A set of lowercase stopwords
    """
    if path is None:
        path = Path(__file__).parent / "data" / "stopwords.txt"

    with open(path, "r", encoding="utf-8") as f:
        return set(line.strip().lower() for line in f if line.strip())


def aggregate_counts(observations: Iterable[tuple[str, str]]) -> list[CountRecord]:
    """Count how often each (group, feature) pair is observed.

    Args:
        observations: One (group, feature) pair per observation, e.g. one
            row per word occurrence or per survey answer

    Returns:
        Pre-aggregated count table, pairs in first-seen order

    Examples:
        >>> aggregate_counts([("A", "x"), ("A", "x"), ("B", "y")])
        [CountRecord(group='A', feature='x', count=2), CountRecord(group='B', feature='y', count=1)]
    """
    counter = Counter(observations)
    return [
        CountRecord(group=group, feature=feature, count=count)
        for (group, feature), count in counter.items()
    ]


def merge_counts(records: Iterable[CountRecord]) -> list[CountRecord]:
    """Sum the counts of records sharing the same (group, feature) pair.

    Upstream tables are not always pre-aggregated (e.g. one row per
    chapter); the estimator requires each pair at most once.
    """
    totals: dict[tuple[str, str], int] = {}
    for record in records:
        key = (record.group, record.feature)
        totals[key] = totals.get(key, 0) + record.count

    return [
        CountRecord(group=group, feature=feature, count=count)
        for (group, feature), count in totals.items()
    ]


def count_words(
    texts: dict[str, str],
    stopwords: set[str] | None = None,
) -> list[CountRecord]:
    """Compute a word count table from one text per group.

    Args:
        texts: Mapping of group to its full text
        stopwords: Words to leave out of the table

    Returns:
        List of CountRecord objects with normalized words as features
    """
    stopwords = stopwords or set()
    records: list[CountRecord] = []

    for group, text in texts.items():
        normalized = normalize_text(text)

        # Extract words: allow letters, digits, underscores, and apostrophes
        # This captures words like "don't" as a single token
        # Apostrophes must be surrounded by word characters (no standalone ')
        words = re.findall(r"\w+(?:'\w+)*", normalized)
        word_counter = Counter(words)

        for word, count in word_counter.items():
            # Skip pure numbers (years, dates, chapter numbers, etc.)
            if word.isdigit() or word in stopwords:
                continue
            records.append(CountRecord(group=group, feature=word, count=count))

    return records


def rank_features(
    results: Iterable[LogOddsResult],
    top_n: int = 20,
) -> list[GroupRanking]:
    """Pick the most distinctive features of each group.

    Args:
        results: Weighted log-odds results for any number of groups
        top_n: Number of top features to keep per group

    Returns:
        List of GroupRanking objects, one per group, sorted by group name.
        Features are sorted by score (highest first), ties broken by name.
    """
    by_group: dict[str, list[LogOddsResult]] = {}
    for result in results:
        by_group.setdefault(result.group, []).append(result)

    rankings = []
    for group in sorted(by_group):
        ordered = sorted(by_group[group], key=lambda r: (-r.score, r.feature))
        rankings.append(GroupRanking(group=group, top_features=ordered[:top_n]))

    return rankings
