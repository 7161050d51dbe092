from pathlib import Path

from dagster import Definitions, load_from_defs_folder

from log_odds_pipes.config import DB_PATH, SOURCES_DIR
from log_odds_pipes.defs.io_managers import CountTableCsvIOManager
from log_odds_pipes.defs.resources import AnalyticsDB


def _load_definitions() -> Definitions:
    """Collect the assets and checks under defs/, bound to the count table
    CSV store and the SQLite analytics database in the data directory."""
    loaded = load_from_defs_folder(path_within_project=Path(__file__).parent)

    return Definitions(
        assets=loaded.assets,
        asset_checks=loaded.asset_checks,
        schedules=loaded.schedules,
        sensors=loaded.sensors,
        jobs=loaded.jobs,
        resources={
            **(loaded.resources or {}),
            "count_table_csv_io": CountTableCsvIOManager(storage_dir=str(SOURCES_DIR)),
            "analytics_db": AnalyticsDB(db_path=str(DB_PATH)),
        },
    )


defs = _load_definitions()
