"""Core application configuration & tunable payroll batch rules.

All values that may evolve (queue wiring, retry/backoff thresholds, progress
cadence, status retention, statutory rule constants) are centralized here so
they can be adjusted without diving into service logic. Environment variables
override the defaults at import time; tests monkeypatch the dicts directly.
"""
from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
	raw = os.getenv(name)
	if raw is None or not raw.strip():
		return default
	return raw.strip().lower() in ("1", "true", "yes", "on")


# --------------------------------- Queue ---------------------------------- #
QUEUE_SETTINGS: dict[str, str | int | float | bool] = {
	# When False the broker is never contacted and every run is synchronous.
	"use_redis": _env_bool("PAYROLL_USE_REDIS", True),
	"redis_url": os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0"),
	"key_prefix": os.getenv("PAYROLL_QUEUE_PREFIX", "payroll"),
	"health_check_timeout": float(os.getenv("REDIS_HEALTH_CHECK_TIMEOUT", "2.0")),
	# Worker pool: each worker runs one payroll job to completion at a time.
	"concurrency": int(os.getenv("PAYROLL_WORKER_CONCURRENCY", "3")),
	"poll_interval": 1.0,             # seconds between empty polls
	"keep_completed": 100,            # completed jobs retained in Redis
	"keep_failed": 50,                # failed jobs retained in Redis
	"warn_depth": 1000,
	# An active job whose lease is not renewed within this many seconds is
	# treated as stalled (its worker died) and handed back to the wait set.
	"stall_timeout": float(os.getenv("PAYROLL_STALL_TIMEOUT", "300")),
}

# ------------------------------- Retry Policy ----------------------------- #
RETRY_POLICY: dict[str, int | float] = {
	"max_attempts": 3,
	"base_seconds": 5,
	"factor": 2,          # Exponential factor
	"max_seconds": 300,
	"jitter_pct": 0.0,    # deterministic delays unless overridden
}

# -------------------------------- Progress -------------------------------- #
PROGRESS_SETTINGS: dict[str, int] = {
	# Report progress after this many employees have been handled.
	"interval": 10,
}

# ------------------------------ Job Status -------------------------------- #
JOB_STATUS_SETTINGS: dict[str, int] = {
	# Upper bound on records held by the in-process status registry.
	"capacity": int(os.getenv("PAYROLL_STATUS_CAPACITY", "500")),
}

# ------------------------------ Payroll Rules ----------------------------- #
# Fixed proportional components of gross and statutory deduction constants.
PAYROLL_RULES: dict[str, float | int | list[tuple[int, int]]] = {
	"basic_pct": 0.40,
	"hra_pct": 0.20,
	"da_pct": 0.10,
	"pf_rate": 0.12,
	"pf_wage_ceiling": 15000,
	"esi_gross_threshold": 21000,
	"esi_employee_rate": 0.0075,
	"esi_employer_rate": 0.0325,
	# (gross strictly above, monthly professional tax), highest slab first
	"professional_tax_slabs": [(15000, 200), (10000, 150)],
}

__all__ = [
	"QUEUE_SETTINGS",
	"RETRY_POLICY",
	"PROGRESS_SETTINGS",
	"JOB_STATUS_SETTINGS",
	"PAYROLL_RULES",
]
