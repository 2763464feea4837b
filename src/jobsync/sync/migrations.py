"""Schema migrations for the persisted state blob.

Each migration is a pure function from the raw (camelCase) state dict of
one schema version to the next. ``MIGRATIONS`` lists them as
``(target_version, fn)`` in strictly increasing order; ``migrate()`` runs
every step above the stored version.

Every step tolerates missing fields and leaves already-migrated data
alone, so running a step twice gives the same result as running it once.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

CURRENT_VERSION = 7

_TABLES = ("customers", "parts", "laborItems", "jobs", "quotes", "invoices")
_PRICED_TABLES = ("jobs", "quotes", "invoices")
_RETIRED_JOB_STATUSES = {"quote", "approved", "in-progress"}

State = dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _slices(state: State) -> list[dict[str, Any]]:
    """Every place that holds tables: the top level and all stored slices."""
    found = [state]
    for key in ("dataByUser", "dataByWorkspace"):
        found.extend(s for s in (state.get(key) or {}).values() if isinstance(s, dict))
    return found


def _profile_id(state: State) -> str:
    users = state.get("users") or []
    return state.get("currentUserId") or (users[0].get("id") if users else None) or str(uuid.uuid4())


def v2_local_profiles(state: State) -> State:
    """Single global dataset becomes the "Default" local profile."""
    if state.get("dataByUser"):
        return state
    now = _now()
    user_id = str(uuid.uuid4())
    tables = {table: list(state.get(table) or []) for table in _TABLES}
    state["users"] = [{"id": user_id, "name": "Default", "createdAt": now, "updatedAt": now}]
    state["currentUserId"] = user_id
    state["dataByUser"] = {user_id: tables}
    state.setdefault("outboxByUser", {user_id: []})
    state.setdefault("lastSyncByUser", {user_id: None})
    return state


def v3_device_and_outbox(state: State) -> State:
    user_id = _profile_id(state)
    state["deviceId"] = state.get("deviceId") or str(uuid.uuid4())
    state["outboxByUser"] = state.get("outboxByUser") or {user_id: []}
    state["lastSyncByUser"] = state.get("lastSyncByUser") or {user_id: None}
    state.pop("isSyncing", None)
    return state


def v4_workspace_linkage(state: State) -> State:
    for key in ("userEmail", "workspaceId", "role"):
        state[key] = state.get(key) or None
    return state


def _job_to_quote(job: dict[str, Any], number: int, now: str) -> dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "jobId": job.get("id"),
        "customerId": job.get("customerId"),
        "quoteNumber": f"Q-{number:04d}",
        "title": job.get("title", ""),
        "description": job.get("description"),
        "status": "draft",
        "items": list(job.get("items") or []),
        "subtotal": job.get("subtotal") or 0,
        "tax": job.get("tax") or 0,
        "taxRate": job.get("taxRate") or 0,
        "total": job.get("total") or 0,
        "notes": job.get("notes"),
        "createdAt": job.get("createdAt") or now,
        "updatedAt": job.get("updatedAt") or now,
    }


def v5_split_quotes_from_jobs(state: State) -> State:
    """Jobs lose their pricing; priced jobs still in "quote" become draft quotes."""
    now = _now()
    for tables in _slices(state):
        jobs = tables.get("jobs")
        if not jobs:
            continue
        quotes = list(tables.get("quotes") or [])
        quoted_jobs = {quote.get("jobId") for quote in quotes}
        migrated_jobs = []
        for job in jobs:
            if (
                job.get("status") == "quote"
                and job.get("items")
                and job.get("id") not in quoted_jobs
            ):
                quotes.append(_job_to_quote(job, len(quotes) + 1, now))
            project = {
                key: value
                for key, value in job.items()
                if key not in ("items", "subtotal", "tax", "taxRate", "total")
            }
            if project.get("status") in _RETIRED_JOB_STATUSES:
                project["status"] = "active"
            migrated_jobs.append(project)
        tables["jobs"] = migrated_jobs
        tables["quotes"] = quotes
        tables.setdefault("invoices", [])
    return state


def v6_business_settings(state: State) -> State:
    if state.get("settings"):
        return state
    now = _now()
    state["settings"] = {
        "enableTax": False,
        "defaultTaxRate": 0,
        "defaultPaymentTerms": "Net 30 days",
        "defaultValidityDays": 30,
        "currencySymbol": "$",
        "dateFormat": "MM/DD/YYYY",
        "createdAt": now,
        "updatedAt": now,
    }
    return state


def v7_workspace_slices(state: State) -> State:
    """Add the per-workspace map and rename ``items`` to ``lineItems``.

    The top-level view tables are dropped: they are re-derived from the
    active slice on load.
    """
    state["dataByWorkspace"] = state.get("dataByWorkspace") or {}
    for tables in _slices(state):
        for table in _PRICED_TABLES:
            for row in tables.get(table) or []:
                if "items" in row:
                    items = row.pop("items")
                    row.setdefault("lineItems", items or [])
    for table in _TABLES:
        state.pop(table, None)
    state.pop("syncError", None)
    return state


MIGRATIONS: list[tuple[int, Callable[[State], State]]] = [
    (2, v2_local_profiles),
    (3, v3_device_and_outbox),
    (4, v4_workspace_linkage),
    (5, v5_split_quotes_from_jobs),
    (6, v6_business_settings),
    (7, v7_workspace_slices),
]


def migrate(state: State, version: int) -> State:
    """Bring *state* from *version* up to ``CURRENT_VERSION``.

    The input is never mutated.

    Raises:
        ValueError: If *version* is newer than this code understands.
    """
    if version > CURRENT_VERSION:
        raise ValueError(
            f"State version {version} is newer than supported version {CURRENT_VERSION}"
        )
    result = copy.deepcopy(state)
    for target, step in MIGRATIONS:
        if version < target:
            logger.info("Migrating state to version %d", target)
            result = step(result)
    return result
