"""Celery queue topology: exchanges, queues, task routing, and per-task limits."""

from kombu import Exchange, Queue  # type: ignore[import-untyped]

# ── Exchanges ─────────────────────────────────────────────────────────────────

default_exchange = Exchange("default", type="direct")

# ── Queues ────────────────────────────────────────────────────────────────────

CELERY_QUEUES = (
    Queue("default", default_exchange, routing_key="default"),
    # Deadlines: scheduled scans only, so a slow scan never delays ad-hoc work
    Queue("deadlines", default_exchange, routing_key="deadlines"),
)

# ── Task routing ──────────────────────────────────────────────────────────────

CELERY_TASK_ROUTES: dict[str, dict] = {
    "tasks.scan_deadlines": {"queue": "deadlines"},
}

# ── Per-task time limits ──────────────────────────────────────────────────────

CELERY_TASK_ANNOTATIONS: dict[str, dict] = {
    "tasks.scan_deadlines": {
        "time_limit": 300,
        "soft_time_limit": 240,
    },
}
