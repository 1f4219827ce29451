"""Single-shot entry points for cron-style schedulers."""

from __future__ import annotations

import urllib.request
from typing import Callable

from dispatch_worker.worker import (
    SweepResult,
    WorkerSettings,
    load_settings,
    run_sweep_with_retries,
)


def dispatch_tick(
    settings: WorkerSettings | None = None,
    opener: Callable[..., object] = urllib.request.urlopen,
) -> SweepResult:
    """Run one dispatch sweep with the worker's retry policy."""
    return run_sweep_with_retries(settings or load_settings(), opener=opener)
