"""Background dispatch sweeper."""

from .worker import (
    SweepResult,
    WorkerSettings,
    load_settings,
    run_forever,
    run_sweep_once,
    run_sweep_with_retries,
)

__all__ = [
    "SweepResult",
    "WorkerSettings",
    "load_settings",
    "run_forever",
    "run_sweep_once",
    "run_sweep_with_retries",
]
