"""Pydantic models for the entity store and the sync engine.

Defines the data contracts shared by every sync module:

- ``EntityKind`` / ``Operation``: tags for tables and change operations.
- ``Customer``, ``Part``, ``LaborItem``, ``Job``, ``Quote``, ``Invoice``:
  the synced records, plus ``LineItem`` owned by jobs, quotes and invoices.
- ``WorkspaceSlice``: one copy of every table for a workspace (or a legacy
  per-user profile).
- ``ChangeEvent``: one outbox entry describing a local mutation.
- ``PullResult``: what the remote returns for a pull.
- ``BusinessSettings``, ``AuthUser``: settings and session identity.
- ``StoreState``: everything that is persisted between runs.
- ``SyncPhase``, ``SyncStatus``, ``SyncReport``: engine observability.

Records use camelCase aliases on the wire and in the persisted blob
(``updatedAt``, ``lineItems``) and accept either the alias or the field
name on input. Unknown remote columns are kept so they survive a
round trip. Everything except ``StoreState`` is frozen.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO 8601 timestamp for ordering.

    Naive values are taken as UTC. Missing or unparseable values sort
    before every real timestamp.
    """
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Unparseable timestamp %r treated as oldest", value)
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EntityKind(str, Enum):
    """Synced tables. The value is the table name used on the wire."""

    CUSTOMERS = "customers"
    PARTS = "parts"
    LABOR_ITEMS = "laborItems"
    JOBS = "jobs"
    QUOTES = "quotes"
    INVOICES = "invoices"


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class CamelModel(BaseModel):
    model_config = {
        "frozen": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "allow",
    }


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Record(CamelModel):
    """Base for every synced row: a string id plus ISO timestamps."""

    id: str
    created_at: str = ""
    updated_at: str = ""

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _null_timestamp(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_row(self) -> dict[str, Any]:
        """Wire/persisted representation (camelCase, JSON-safe)."""
        return self.model_dump(by_alias=True, mode="json")


class LineItem(CamelModel):
    """One priced line of a job, quote or invoice.

    ``total`` defaults to ``quantity * unitPrice`` when the caller leaves
    it out.
    """

    id: str = Field(default_factory=new_id)
    type: Literal["part", "labor", "service"] = "service"
    item_id: str | None = None
    quantity: float = 0
    unit_price: float = 0
    total: float = 0
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_total(cls, data: Any) -> Any:
        if isinstance(data, dict) and "total" not in data:
            quantity = data.get("quantity") or 0
            price = data.get("unitPrice", data.get("unit_price")) or 0
            data = {**data, "total": round(float(quantity) * float(price), 2)}
        return data


class Customer(Record):
    name: str = ""
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    company: str | None = None


class Part(Record):
    name: str = ""
    description: str | None = None
    unit_price: float = 0
    stock: float = 0
    sku: str | None = None
    category: str | None = None
    qr_code: str | None = None


class LaborItem(Record):
    name: str = ""
    description: str | None = None
    hourly_rate: float = 0
    category: str | None = None


JobStatus = Literal["active", "on-hold", "completed", "cancelled"]
QuoteStatus = Literal["draft", "sent", "approved", "rejected", "expired"]
InvoiceStatus = Literal["draft", "sent", "paid", "overdue", "cancelled"]


class Job(Record):
    customer_id: str | None = None
    title: str = ""
    description: str | None = None
    status: JobStatus = "active"
    line_items: list[LineItem] = Field(default_factory=list)
    notes: str | None = None
    start_date: str | None = None
    due_date: str | None = None
    completed_at: str | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None


class PricedDocument(Record):
    """Shared shape of quotes and invoices."""

    job_id: str | None = None
    customer_id: str | None = None
    title: str = ""
    description: str | None = None
    line_items: list[LineItem] = Field(default_factory=list)
    tax_rate: float = 0
    subtotal: float = 0
    tax: float = 0
    total: float = 0
    notes: str | None = None


class Quote(PricedDocument):
    quote_number: str = ""
    status: QuoteStatus = "draft"
    valid_until: str | None = None


class Invoice(PricedDocument):
    invoice_number: str = ""
    quote_id: str | None = None
    status: InvoiceStatus = "draft"
    due_date: str | None = None
    payment_terms: str | None = None
    paid_at: str | None = None
    paid_amount: float | None = None


def record_type(kind: EntityKind) -> type[Record]:
    """Model class stored in the table named by *kind*."""
    match kind:
        case EntityKind.CUSTOMERS:
            return Customer
        case EntityKind.PARTS:
            return Part
        case EntityKind.LABOR_ITEMS:
            return LaborItem
        case EntityKind.JOBS:
            return Job
        case EntityKind.QUOTES:
            return Quote
        case EntityKind.INVOICES:
            return Invoice
    raise ValueError(f"Unknown entity kind: {kind!r}")


# ---------------------------------------------------------------------------
# Slices and change events
# ---------------------------------------------------------------------------

_TABLE_FIELDS: dict[EntityKind, str] = {
    EntityKind.CUSTOMERS: "customers",
    EntityKind.PARTS: "parts",
    EntityKind.LABOR_ITEMS: "labor_items",
    EntityKind.JOBS: "jobs",
    EntityKind.QUOTES: "quotes",
    EntityKind.INVOICES: "invoices",
}


class WorkspaceSlice(CamelModel):
    """All six tables for one workspace. Missing or null tables are empty."""

    model_config = {"extra": "ignore"}

    customers: list[Customer] = Field(default_factory=list)
    parts: list[Part] = Field(default_factory=list)
    labor_items: list[LaborItem] = Field(default_factory=list)
    jobs: list[Job] = Field(default_factory=list)
    quotes: list[Quote] = Field(default_factory=list)
    invoices: list[Invoice] = Field(default_factory=list)

    @field_validator(*_TABLE_FIELDS.values(), mode="before")
    @classmethod
    def _null_table_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def table(self, kind: EntityKind) -> list[Record]:
        return list(getattr(self, _TABLE_FIELDS[kind]))

    def with_table(self, kind: EntityKind, records: list[Record]) -> WorkspaceSlice:
        return self.model_copy(update={_TABLE_FIELDS[kind]: list(records)})

    def find(self, kind: EntityKind, record_id: str) -> Record | None:
        for record in getattr(self, _TABLE_FIELDS[kind]):
            if record.id == record_id:
                return record
        return None

    def counts(self) -> dict[str, int]:
        return {kind.value: len(self.table(kind)) for kind in EntityKind}


class ChangeEvent(CamelModel):
    """One local mutation waiting in the outbox.

    ``row`` is the full record snapshot; for deletes it is the last state
    before removal and ``deletedAt`` is set (a tombstone).
    """

    id: str = Field(default_factory=new_id)
    entity: EntityKind
    operation: Operation
    row: dict[str, Any]
    updated_at: str = Field(default_factory=now_iso)
    deleted_at: str | None = None

    @classmethod
    def for_record(
        cls, entity: EntityKind, operation: Operation, record: Record
    ) -> ChangeEvent:
        stamp = now_iso()
        return cls(
            entity=entity,
            operation=operation,
            row=record.to_row(),
            updated_at=stamp,
            deleted_at=stamp if operation is Operation.DELETE else None,
        )

    @property
    def record_id(self) -> str | None:
        value = self.row.get("id")
        return str(value) if value else None

    def to_record(self) -> Record:
        return record_type(self.entity).model_validate(self.row)


class PullResult(CamelModel):
    changes: list[ChangeEvent] = Field(default_factory=list)
    server_time: str


# ---------------------------------------------------------------------------
# Settings and session
# ---------------------------------------------------------------------------


class BusinessSettings(CamelModel):
    enable_tax: bool = False
    default_tax_rate: float = 0
    business_name: str | None = None
    business_address: str | None = None
    business_phone: str | None = None
    business_email: str | None = None
    default_payment_terms: str = "Net 30 days"
    default_validity_days: int = 30
    currency_symbol: str = "$"
    date_format: str = "MM/DD/YYYY"
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)


Role = Literal["owner", "member"]


class AuthUser(CamelModel):
    id: str
    email: str
    name: str | None = None
    role: Role | None = None
    workspace_id: str | None = None
    workspace_name: str | None = None


class StoreState(CamelModel):
    """Everything the persistence adapter writes to disk.

    Mutable on purpose: the store updates session fields and the per-user
    maps in place and always re-reads them right before writing.
    """

    model_config = {"frozen": False, "extra": "ignore"}

    settings: BusinessSettings = Field(default_factory=BusinessSettings)
    authenticated_user: AuthUser | None = None
    user_email: str | None = None
    workspace_id: str | None = None
    workspace_name: str | None = None
    role: Role | None = None
    current_user_id: str | None = None
    users: list[dict[str, Any]] = Field(default_factory=list)
    device_id: str = Field(default_factory=new_id)
    data_by_user: dict[str, WorkspaceSlice] = Field(default_factory=dict)
    data_by_workspace: dict[str, WorkspaceSlice] = Field(default_factory=dict)
    outbox_by_user: dict[str, list[ChangeEvent]] = Field(default_factory=dict)
    last_sync_by_user: dict[str, str | None] = Field(default_factory=dict)

    def acting_user_id(self) -> str | None:
        """Authenticated user id, else the legacy local profile id."""
        if self.authenticated_user is not None:
            return self.authenticated_user.id
        return self.current_user_id


# ---------------------------------------------------------------------------
# Engine observability
# ---------------------------------------------------------------------------


class SyncPhase(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class SyncStatus(BaseModel):
    """Point-in-time view of the engine for one user.

    Attributes:
        phase: Current engine phase.
        is_syncing: True while a pass is in flight.
        last_error: Message of the last failed pass, cleared on success.
        pending_changes: Outbox length for the acting user.
        last_synced_at: Cursor (server time) of the last successful pull.
        user_id: Acting user, if any.
        workspace_id: Active workspace, if any.
        save_error: Last failed state-file save, cleared by the next good one.
    """

    phase: SyncPhase
    is_syncing: bool
    last_error: str | None = None
    pending_changes: int = 0
    last_synced_at: str | None = None
    user_id: str | None = None
    workspace_id: str | None = None
    save_error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Outcome of one sync pass.

    Attributes:
        user_id: Acting user for the pass.
        workspace_id: Workspace that was synced.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass ended.
        pushed: Outbox events sent and acknowledged.
        pulled: Remote change events received.
        applied: Creates/updates written to the slice.
        deleted: Records removed by remote deletes.
        skipped: Remote rows ignored because the local copy was newer.
        cursor: Cursor after the pass.
        error: Failure message, None on success.
    """

    user_id: str | None = None
    workspace_id: str | None = None
    started_at: str
    completed_at: str | None = None
    pushed: int = 0
    pulled: int = 0
    applied: int = 0
    deleted: int = 0
    skipped: int = 0
    cursor: str | None = None
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return self.error is None
