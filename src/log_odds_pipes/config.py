import os
from pathlib import Path

# Data lives under the XDG data home, ~/.local/share unless overridden
XDG_DATA = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share"))

# One directory per installation: the SQLite database with count tables and
# log-odds results, plus the CSV snapshots of each loaded source.
DATA_ROOT = XDG_DATA / "log-odds-pipes"
DATA_ROOT.mkdir(parents=True, exist_ok=True)

# Written by the count table CSV I/O manager, one {asset}.csv per source asset
SOURCES_DIR = DATA_ROOT / "sources"
SOURCES_DIR.mkdir(parents=True, exist_ok=True)

DB_PATH = DATA_ROOT / "analytics.db"
