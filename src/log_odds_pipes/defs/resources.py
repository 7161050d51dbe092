import dagster as dg

from log_odds_pipes import db
from log_odds_pipes.models import CountRecord, GroupRanking, LogOddsResult


class AnalyticsDB(dg.ConfigurableResource):
    """SQLite database resource for analytics data.

    Wraps pure Python db module with Dagster resource pattern.
    Defaults to XDG_DATA_HOME/log-odds-pipes/analytics.db.
    """

    db_path: str

    def get_connection(self):
        """Get a connection to the analytics database."""
        return db.get_connection(self.db_path)

    def replace_count_table(self, records: list[CountRecord]) -> None:
        """Replace the count table in the database."""
        db.replace_count_table(self.db_path, records)

    def read_count_table(self) -> list[CountRecord]:
        """Read the count table from the database."""
        return db.read_count_table(self.db_path)

    def replace_log_odds(
        self,
        results: list[LogOddsResult],
        rankings: list[GroupRanking] | None = None,
    ) -> None:
        """Replace all weighted log-odds results in the database."""
        db.replace_log_odds(self.db_path, results, rankings)
