import csv
import io
import logging
from pathlib import Path

import aiohttp

from log_odds_pipes.models import CountRecord

logger = logging.getLogger(__name__)

DEFAULT_GROUP_COLUMN = "group"
DEFAULT_FEATURE_COLUMN = "feature"
DEFAULT_COUNT_COLUMN = "n"


def parse_count(value: str) -> int | float:
    """Parse a count cell, keeping integers as integers.

    Raises:
        ValueError: If the cell is not a number.
    """
    value = value.strip()
    try:
        return int(value)
    except ValueError:
        return float(value)


def parse_count_csv(
    text: str,
    group_column: str = DEFAULT_GROUP_COLUMN,
    feature_column: str = DEFAULT_FEATURE_COLUMN,
    count_column: str = DEFAULT_COUNT_COLUMN,
) -> list[CountRecord]:
    """Parse a count table from CSV text with a header row.

    Rows with an empty group or feature are skipped with a warning. Extra
    columns are ignored.

    Returns:
        List of CountRecord objects in file order.

    Raises:
        KeyError: If one of the requested columns is not in the header.
        ValueError: If a count cell cannot be parsed as a number.
    """
    reader = csv.DictReader(io.StringIO(text))
    header = reader.fieldnames or []

    for column in (group_column, feature_column, count_column):
        if column not in header:
            raise KeyError(f"Column '{column}' not found in CSV header {header}")

    records: list[CountRecord] = []

    # Line 1 is the header
    for line, row in enumerate(reader, start=2):
        group = (row[group_column] or "").strip()
        feature = (row[feature_column] or "").strip()

        if not group or not feature:
            logger.warning(f"Skipping line {line} with empty group or feature")
            continue

        try:
            count = parse_count(row[count_column] or "")
        except ValueError as e:
            raise ValueError(
                f"Could not parse count on line {line}: {row[count_column]!r}"
            ) from e

        records.append(CountRecord(group=group, feature=feature, count=count))

    return records


def load_count_csv(
    path: str | Path,
    group_column: str = DEFAULT_GROUP_COLUMN,
    feature_column: str = DEFAULT_FEATURE_COLUMN,
    count_column: str = DEFAULT_COUNT_COLUMN,
) -> list[CountRecord]:
    """Load a count table from a local CSV file.

    Raises:
        FileNotFoundError: If the file does not exist.
        KeyError: If one of the requested columns is missing.
        ValueError: If a count cannot be parsed.
    """
    path = Path(path)
    logger.info(f"Reading count table from {path}")

    records = parse_count_csv(
        path.read_text(encoding="utf-8"),
        group_column=group_column,
        feature_column=feature_column,
        count_column=count_column,
    )

    logger.info(f"Read {len(records)} rows")
    return records


def load_observations_csv(
    path: str | Path,
    group_column: str = DEFAULT_GROUP_COLUMN,
    feature_column: str = DEFAULT_FEATURE_COLUMN,
) -> list[tuple[str, str]]:
    """Load raw observations, one (group, feature) pair per CSV row.

    Rows with an empty group or feature are skipped with a warning.

    Raises:
        FileNotFoundError: If the file does not exist.
        KeyError: If one of the requested columns is missing.
    """
    path = Path(path)
    logger.info(f"Reading observations from {path}")

    with open(path, "r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        header = reader.fieldnames or []

        for column in (group_column, feature_column):
            if column not in header:
                raise KeyError(f"Column '{column}' not found in CSV header {header}")

        observations: list[tuple[str, str]] = []
        for line, row in enumerate(reader, start=2):
            group = (row[group_column] or "").strip()
            feature = (row[feature_column] or "").strip()

            if not group or not feature:
                logger.warning(f"Skipping line {line} with empty group or feature")
                continue

            observations.append((group, feature))

    logger.info(f"Read {len(observations)} observations")
    return observations


def load_texts(directory: str | Path) -> dict[str, str]:
    """Read one text per group from a directory of {group}.txt files.

    Returns:
        Mapping of group (the file stem) to its text, sorted by group.

    Raises:
        FileNotFoundError: If the directory does not exist.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Text directory not found: {directory}")

    texts: dict[str, str] = {}
    for text_file in sorted(directory.glob("*.txt")):
        texts[text_file.stem] = text_file.read_text(encoding="utf-8")

    logger.info(f"Read {len(texts)} texts from {directory}")
    return texts


async def download(url: str) -> str:
    """Download the content of a URL as text.

    Raises:
        aiohttp.ClientError: If the request fails or returns non-200 status.
    """
    async with aiohttp.ClientSession() as session:
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.text()


async def download_count_csv(
    url: str,
    group_column: str = DEFAULT_GROUP_COLUMN,
    feature_column: str = DEFAULT_FEATURE_COLUMN,
    count_column: str = DEFAULT_COUNT_COLUMN,
) -> list[CountRecord]:
    """Download a count table published as CSV.

    Raises:
        aiohttp.ClientError: If the request fails or returns non-200 status.
        KeyError: If one of the requested columns is missing.
        ValueError: If a count cannot be parsed.
    """
    logger.info(f"Downloading count table from {url}")

    text = await download(url)
    logger.info(f"Downloaded {len(text)} characters")

    records = parse_count_csv(
        text,
        group_column=group_column,
        feature_column=feature_column,
        count_column=count_column,
    )

    logger.info(f"Found {len(records)} rows")
    return records


if __name__ == "__main__":
    import asyncio
    import sys

    logging.basicConfig(level=logging.INFO)
    asyncio.run(download_count_csv(sys.argv[1]))
