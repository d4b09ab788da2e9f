# repository/namespaces.py
from typing import Final

ROOT: Final[str] = "bulkgrader"

JOBS: Final[str] = f"{ROOT}:jobs"
SNAPSHOTS: Final[str] = f"{JOBS}:snapshot"  # per-job metadata snapshot
RESULTS: Final[str] = f"{ROOT}:results"  # full evaluation payload per (job, item)
