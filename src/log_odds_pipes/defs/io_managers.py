import csv
from pathlib import Path

import dagster as dg

from log_odds_pipes.extract import load_count_csv
from log_odds_pipes.models import CountRecord


class CountTableCsvIOManager(dg.ConfigurableIOManager):
    """I/O Manager that stores count tables as local CSV files.

    Each asset is stored as {storage_dir}/{asset_name}.csv with the columns
    group, feature and n, so the files can be inspected or edited by hand.
    Defaults to XDG_DATA_HOME/log-odds-pipes/sources.
    """

    storage_dir: str

    def _get_path(self, context: dg.OutputContext | dg.InputContext) -> Path:
        """Get file path for a count table asset."""
        if context.has_partition_key:
            raise ValueError("CountTableCsvIOManager does not support partitioned assets")

        name = "__".join(context.asset_key.path)
        base_path = Path(self.storage_dir)
        base_path.mkdir(parents=True, exist_ok=True)
        return base_path / f"{name}.csv"

    def handle_output(self, context: dg.OutputContext, obj: list[CountRecord]):
        """Save a count table to a CSV file."""
        path = self._get_path(context)

        with open(path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(["group", "feature", "n"])
            writer.writerows((r.group, r.feature, r.count) for r in obj)

        context.log.info(f"Stored {len(obj)} rows at {path}")

    def load_input(self, context: dg.InputContext) -> list[CountRecord]:
        """Load a count table from a CSV file."""
        path = self._get_path(context)

        if not path.exists():
            raise FileNotFoundError(
                f"Count table not found: {path}. "
                "Materialize the asset or add the file manually."
            )

        context.log.info(f"Loaded count table from {path}")
        return load_count_csv(path)
