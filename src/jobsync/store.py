"""Entity store: local CRUD, session state and the glue to sync.

``JobStore`` is an explicit object (there is no module-level singleton).
It owns the persisted ``StoreState`` and wires together:

- ``WorkspaceResolver``: which slice is active, legacy migration;
- ``Outbox``: the per-user change log;
- ``SyncEngine``: push/pull passes, holding this store by reference;
- ``AutoSyncTrigger``: best-effort background sync after mutations;
- ``StateStore``: the on-disk blob.

Every mutator follows the same steps: resolve the active slice (no
workspace means a silent no-op returning ``None``), build the new record,
write the slice back, append one change event per touched record to the
acting user's outbox, re-derive the view, save, and request a sync.
Everything but the file write happens synchronously, so the outbox is
complete before the mutator returns. Under an event loop the write runs
in a worker thread (see ``flush``). A failed save never undoes the change.

Mutator inputs may use field names (``unit_price``) or wire names
(``unitPrice``). Business values are not validated beyond their types.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic.alias_generators import to_camel

from .core.async_utils import run_sync
from .core.client import LocalOnlyClient, SyncRemote
from .errors import PersistenceError, RemoteError
from .sync.engine import SyncEngine
from .sync.models import (
    AuthUser,
    BusinessSettings,
    ChangeEvent,
    Customer,
    EntityKind,
    Invoice,
    Job,
    LaborItem,
    LineItem,
    Operation,
    Part,
    Quote,
    Record,
    StoreState,
    SyncReport,
    WorkspaceSlice,
    new_id,
    now_iso,
    record_type,
)
from .sync.outbox import Outbox
from .sync.scheduler import AutoSyncTrigger
from .sync.state import Snapshot, StateStore
from .sync.totals import Totals, compute_totals
from .sync.workspace import WorkspaceResolver

logger = logging.getLogger(__name__)

_MANAGED_FIELDS = ("id", "created_at", "updated_at")


def _normalize(model: type, data: Mapping[str, Any]) -> dict[str, Any]:
    """Map wire names to field names; unknown keys pass through unchanged."""
    by_alias = {to_camel(name): name for name in model.model_fields}
    return {by_alias.get(key, key): value for key, value in data.items()}


def _line_items(items: Iterable[Any] | None) -> list[LineItem]:
    return [
        item if isinstance(item, LineItem) else LineItem.model_validate(item)
        for item in items or []
    ]


def _part_quantities(items: Iterable[LineItem]) -> dict[str, float]:
    quantities: dict[str, float] = {}
    for item in items:
        if item.type == "part" and item.item_id:
            quantities[item.item_id] = quantities.get(item.item_id, 0) + item.quantity
    return quantities


class JobStore:
    """Offline-first store for customers, parts, labor, jobs, quotes and invoices.

    Args:
        state: Loaded state; a fresh one when omitted.
        persistence: Where to save after every change. ``None`` keeps
            everything in memory.
        client: Remote for sync and workspace calls. Offline when omitted.
        auto_sync: Request a background sync after each mutation.
    """

    def __init__(
        self,
        state: StoreState | None = None,
        *,
        persistence: StateStore | None = None,
        client: SyncRemote | None = None,
        auto_sync: bool = True,
    ) -> None:
        self.state = state or StoreState()
        self.persistence = persistence
        self.client = client or LocalOnlyClient()
        self.persist_error: str | None = None
        self._pending_saves: set[asyncio.Task[None]] = set()
        self.resolver = WorkspaceResolver(on_migrate=self._save)
        self.engine = SyncEngine(self, self.client)
        self.trigger = AutoSyncTrigger(self.engine.sync_now, enabled=auto_sync)
        self.view = WorkspaceSlice()
        self.refresh_view()

    @classmethod
    def open(
        cls,
        persistence: StateStore,
        client: SyncRemote | None = None,
        auto_sync: bool = True,
    ) -> JobStore:
        """Load state from *persistence* and build a store around it."""
        return cls(
            persistence.load(),
            persistence=persistence,
            client=client,
            auto_sync=auto_sync,
        )

    # ------------------------------------------------------------------
    # View and session accessors
    # ------------------------------------------------------------------

    @property
    def outbox(self) -> Outbox:
        return Outbox(self.state.outbox_by_user)

    @property
    def is_authenticated(self) -> bool:
        return self.state.authenticated_user is not None

    @property
    def is_syncing(self) -> bool:
        return self.engine.is_syncing

    @property
    def sync_error(self) -> str | None:
        return self.engine.last_error

    @property
    def customers(self) -> list[Customer]:
        return self.view.customers

    @property
    def parts(self) -> list[Part]:
        return self.view.parts

    @property
    def labor_items(self) -> list[LaborItem]:
        return self.view.labor_items

    @property
    def jobs(self) -> list[Job]:
        return self.view.jobs

    @property
    def quotes(self) -> list[Quote]:
        return self.view.quotes

    @property
    def invoices(self) -> list[Invoice]:
        return self.view.invoices

    def refresh_view(self) -> None:
        view = self.resolver.derive_view(self.state)
        if view is not None:
            self.view = view

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.save(self.state)
        except OSError as exc:
            raise PersistenceError(f"Cannot save state: {exc}") from exc

    async def persist_async(self) -> None:
        """Snapshot on the loop, write the file in a worker thread."""
        if self.persistence is None:
            return
        snapshot = self.persistence.snapshot(self.state)
        await self._write(snapshot)

    async def _write(self, snapshot: Snapshot) -> None:
        try:
            await run_sync(self.persistence.write, snapshot)
        except OSError as exc:
            raise PersistenceError(f"Cannot save state: {exc}") from exc

    def _save(self) -> None:
        """Save after a local change. Never raises.

        Inside a running event loop the state is snapshotted right away and
        the file is written from a worker thread; ``flush`` waits for those
        writes. Without a loop the save is synchronous. A failed save is
        logged and kept in ``persist_error`` until the next good one.
        """
        if self.persistence is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            try:
                self.persist()
            except PersistenceError as exc:
                self._save_failed(exc)
            else:
                self.persist_error = None
            return

        task = loop.create_task(self._write(self.persistence.snapshot(self.state)))
        self._pending_saves.add(task)
        task.add_done_callback(self._save_done)

    def _save_done(self, task: asyncio.Task[None]) -> None:
        self._pending_saves.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            self.persist_error = None
        else:
            self._save_failed(exc)

    def _save_failed(self, exc: BaseException) -> None:
        logger.error("State save failed, changes kept in memory: %s", exc)
        self.persist_error = str(exc)

    async def flush(self) -> None:
        """Wait for background saves started by mutators."""
        while self._pending_saves:
            await asyncio.gather(*self._pending_saves, return_exceptions=True)

    # ------------------------------------------------------------------
    # Mutation plumbing
    # ------------------------------------------------------------------

    def _active_slice(self, action: str, kind: EntityKind) -> WorkspaceSlice | None:
        slice_ = self.resolver.resolve(self.state)
        if slice_ is None:
            logger.debug("No active workspace, ignoring %s on %s", action, kind.value)
        return slice_

    def _build_new(self, kind: EntityKind, data: Mapping[str, Any], **computed: Any) -> Record:
        model = record_type(kind)
        fields = _normalize(model, data)
        for key in _MANAGED_FIELDS:
            fields.pop(key, None)
        stamp = now_iso()
        return model.model_validate(
            {**fields, **computed, "id": new_id(), "created_at": stamp, "updated_at": stamp}
        )

    def _build_updated(self, current: Record, fields: dict[str, Any]) -> Record:
        merged = {**current.model_dump(), **fields, "updated_at": now_iso()}
        return type(current).model_validate(merged)

    def _update_fields(self, kind: EntityKind, updates: Mapping[str, Any]) -> dict[str, Any]:
        fields = _normalize(record_type(kind), updates)
        for key in _MANAGED_FIELDS:
            fields.pop(key, None)
        return fields

    @staticmethod
    def _replace(slice_: WorkspaceSlice, kind: EntityKind, record: Record) -> WorkspaceSlice:
        return slice_.with_table(
            kind, [record if r.id == record.id else r for r in slice_.table(kind)]
        )

    def _commit(
        self,
        slice_: WorkspaceSlice,
        changes: list[tuple[EntityKind, Operation, Record]],
    ) -> None:
        state = self.state
        if not self.resolver.write(state, slice_):
            return
        user_id = state.acting_user_id()
        if user_id:
            outbox = self.outbox
            for kind, operation, record in changes:
                outbox.append(user_id, ChangeEvent.for_record(kind, operation, record))
        else:
            logger.warning(
                "No user id, %d change(s) written without outbox entries", len(changes)
            )
        self.refresh_view()
        self._save()
        self._request_sync()

    def _request_sync(self) -> None:
        if self.is_authenticated and self.state.workspace_id:
            self.trigger.request()

    def _create(self, kind: EntityKind, data: Mapping[str, Any]) -> Record | None:
        slice_ = self._active_slice("create", kind)
        if slice_ is None:
            return None
        record = self._build_new(kind, data)
        self._commit(
            slice_.with_table(kind, [*slice_.table(kind), record]),
            [(kind, Operation.CREATE, record)],
        )
        return record

    def _update(self, kind: EntityKind, record_id: str, updates: Mapping[str, Any]) -> Record | None:
        slice_ = self._active_slice("update", kind)
        if slice_ is None:
            return None
        current = slice_.find(kind, record_id)
        if current is None:
            logger.debug("Update of unknown %s %s ignored", kind.value, record_id)
            return None
        record = self._build_updated(current, self._update_fields(kind, updates))
        self._commit(self._replace(slice_, kind, record), [(kind, Operation.UPDATE, record)])
        return record

    def _delete(self, kind: EntityKind, record_id: str) -> Record | None:
        slice_ = self._active_slice("delete", kind)
        if slice_ is None:
            return None
        current = slice_.find(kind, record_id)
        if current is None:
            logger.debug("Delete of unknown %s %s ignored", kind.value, record_id)
            return None
        remaining = [r for r in slice_.table(kind) if r.id != record_id]
        self._commit(slice_.with_table(kind, remaining), [(kind, Operation.DELETE, current)])
        return current

    # ------------------------------------------------------------------
    # Customers, parts, labor items, jobs
    # ------------------------------------------------------------------

    def add_customer(self, data: Mapping[str, Any]) -> Customer | None:
        return self._create(EntityKind.CUSTOMERS, data)

    def update_customer(self, customer_id: str, updates: Mapping[str, Any]) -> Customer | None:
        return self._update(EntityKind.CUSTOMERS, customer_id, updates)

    def delete_customer(self, customer_id: str) -> Customer | None:
        return self._delete(EntityKind.CUSTOMERS, customer_id)

    def add_part(self, data: Mapping[str, Any]) -> Part | None:
        return self._create(EntityKind.PARTS, data)

    def update_part(self, part_id: str, updates: Mapping[str, Any]) -> Part | None:
        return self._update(EntityKind.PARTS, part_id, updates)

    def delete_part(self, part_id: str) -> Part | None:
        return self._delete(EntityKind.PARTS, part_id)

    def add_labor_item(self, data: Mapping[str, Any]) -> LaborItem | None:
        return self._create(EntityKind.LABOR_ITEMS, data)

    def update_labor_item(self, labor_id: str, updates: Mapping[str, Any]) -> LaborItem | None:
        return self._update(EntityKind.LABOR_ITEMS, labor_id, updates)

    def delete_labor_item(self, labor_id: str) -> LaborItem | None:
        return self._delete(EntityKind.LABOR_ITEMS, labor_id)

    def add_job(self, data: Mapping[str, Any]) -> Job | None:
        return self._create(EntityKind.JOBS, data)

    def update_job(self, job_id: str, updates: Mapping[str, Any]) -> Job | None:
        return self._update(EntityKind.JOBS, job_id, updates)

    def delete_job(self, job_id: str) -> Job | None:
        return self._delete(EntityKind.JOBS, job_id)

    # ------------------------------------------------------------------
    # Quotes and invoices
    # ------------------------------------------------------------------

    def _priced_fields(self, fields: dict[str, Any], tax_rate: float | None) -> dict[str, Any]:
        items = _line_items(fields.get("line_items"))
        rate = self.state.settings.default_tax_rate if tax_rate is None else tax_rate
        totals = compute_totals(items, rate, self.state.settings.enable_tax)
        return {
            "line_items": items,
            "tax_rate": rate,
            "subtotal": totals.subtotal,
            "tax": totals.tax,
            "total": totals.total,
        }

    def _reprice(self, current: Record, fields: dict[str, Any]) -> dict[str, Any]:
        if "line_items" not in fields and "tax_rate" not in fields:
            return fields
        priced = {
            "line_items": fields.get("line_items", current.line_items),
            "tax_rate": fields.get("tax_rate", current.tax_rate),
        }
        return {**fields, **self._priced_fields(priced, priced["tax_rate"])}

    def generate_quote_number(self) -> str:
        slice_ = self.resolver.resolve(self.state)
        count = len(slice_.quotes) if slice_ is not None else 0
        return f"Q-{count + 1:04d}"

    def generate_invoice_number(self) -> str:
        slice_ = self.resolver.resolve(self.state)
        count = len(slice_.invoices) if slice_ is not None else 0
        return f"INV-{count + 1:04d}"

    def add_quote(self, data: Mapping[str, Any]) -> Quote | None:
        kind = EntityKind.QUOTES
        slice_ = self._active_slice("create", kind)
        if slice_ is None:
            return None
        fields = self._update_fields(kind, data)
        priced = self._priced_fields(fields, fields.get("tax_rate"))
        record = self._build_new(
            kind, {**fields, **priced}, quote_number=self.generate_quote_number()
        )
        self._commit(
            slice_.with_table(kind, [*slice_.quotes, record]),
            [(kind, Operation.CREATE, record)],
        )
        return record

    def update_quote(self, quote_id: str, updates: Mapping[str, Any]) -> Quote | None:
        kind = EntityKind.QUOTES
        slice_ = self._active_slice("update", kind)
        if slice_ is None:
            return None
        current = slice_.find(kind, quote_id)
        if current is None:
            return None
        fields = self._reprice(current, self._update_fields(kind, updates))
        record = self._build_updated(current, fields)
        self._commit(self._replace(slice_, kind, record), [(kind, Operation.UPDATE, record)])
        return record

    def delete_quote(self, quote_id: str) -> Quote | None:
        return self._delete(EntityKind.QUOTES, quote_id)

    def _adjust_stock(
        self, slice_: WorkspaceSlice, deltas: dict[str, float]
    ) -> tuple[WorkspaceSlice, list[Part]]:
        """Apply non-zero stock deltas, never going below zero."""
        stamp = now_iso()
        adjusted: list[Part] = []
        parts: list[Part] = []
        for part in slice_.parts:
            delta = deltas.get(part.id, 0)
            if delta:
                part = part.model_copy(
                    update={"stock": max(0, part.stock + delta), "updated_at": stamp}
                )
                adjusted.append(part)
            parts.append(part)
        return slice_.with_table(EntityKind.PARTS, parts), adjusted

    def add_invoice(self, data: Mapping[str, Any]) -> Invoice | None:
        """Create an invoice and take its part lines out of stock."""
        kind = EntityKind.INVOICES
        slice_ = self._active_slice("create", kind)
        if slice_ is None:
            return None
        fields = self._update_fields(kind, data)
        priced = self._priced_fields(fields, fields.get("tax_rate"))
        record = self._build_new(
            kind, {**fields, **priced}, invoice_number=self.generate_invoice_number()
        )
        deltas = {
            part_id: -quantity
            for part_id, quantity in _part_quantities(record.line_items).items()
        }
        slice_, adjusted = self._adjust_stock(
            slice_.with_table(kind, [*slice_.invoices, record]), deltas
        )
        self._commit(
            slice_,
            [(kind, Operation.CREATE, record)]
            + [(EntityKind.PARTS, Operation.UPDATE, part) for part in adjusted],
        )
        return record

    def update_invoice(self, invoice_id: str, updates: Mapping[str, Any]) -> Invoice | None:
        """Update an invoice; changed part lines move stock by the difference."""
        kind = EntityKind.INVOICES
        slice_ = self._active_slice("update", kind)
        if slice_ is None:
            return None
        current = slice_.find(kind, invoice_id)
        if current is None:
            return None
        fields = self._reprice(current, self._update_fields(kind, updates))
        record = self._build_updated(current, fields)

        adjusted: list[Part] = []
        slice_ = self._replace(slice_, kind, record)
        if "line_items" in fields:
            deltas = _part_quantities(current.line_items)
            for part_id, quantity in _part_quantities(record.line_items).items():
                deltas[part_id] = deltas.get(part_id, 0) - quantity
            slice_, adjusted = self._adjust_stock(slice_, deltas)

        self._commit(
            slice_,
            [(kind, Operation.UPDATE, record)]
            + [(EntityKind.PARTS, Operation.UPDATE, part) for part in adjusted],
        )
        return record

    def delete_invoice(self, invoice_id: str) -> Invoice | None:
        return self._delete(EntityKind.INVOICES, invoice_id)

    # ------------------------------------------------------------------
    # Dispatch by entity kind
    # ------------------------------------------------------------------

    def add(self, kind: EntityKind, data: Mapping[str, Any]) -> Record | None:
        match EntityKind(kind):
            case EntityKind.QUOTES:
                return self.add_quote(data)
            case EntityKind.INVOICES:
                return self.add_invoice(data)
            case other:
                return self._create(other, data)

    def update(self, kind: EntityKind, record_id: str, updates: Mapping[str, Any]) -> Record | None:
        match EntityKind(kind):
            case EntityKind.QUOTES:
                return self.update_quote(record_id, updates)
            case EntityKind.INVOICES:
                return self.update_invoice(record_id, updates)
            case other:
                return self._update(other, record_id, updates)

    def delete(self, kind: EntityKind, record_id: str) -> Record | None:
        return self._delete(EntityKind(kind), record_id)

    def get(self, kind: EntityKind, record_id: str) -> Record | None:
        return self.view.find(EntityKind(kind), record_id)

    def list_entities(self, kind: EntityKind) -> list[Record]:
        return self.view.table(EntityKind(kind))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_customer(self, customer_id: str) -> Customer | None:
        return self.view.find(EntityKind.CUSTOMERS, customer_id)

    def get_part(self, part_id: str) -> Part | None:
        return self.view.find(EntityKind.PARTS, part_id)

    def get_part_by_sku(self, sku: str) -> Part | None:
        wanted = sku.lower()
        for part in self.view.parts:
            if part.sku and part.sku.lower() == wanted:
                return part
        return None

    def get_labor_item(self, labor_id: str) -> LaborItem | None:
        return self.view.find(EntityKind.LABOR_ITEMS, labor_id)

    def get_job(self, job_id: str) -> Job | None:
        return self.view.find(EntityKind.JOBS, job_id)

    def get_quote(self, quote_id: str) -> Quote | None:
        return self.view.find(EntityKind.QUOTES, quote_id)

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        return self.view.find(EntityKind.INVOICES, invoice_id)

    def get_job_quotes(self, job_id: str) -> list[Quote]:
        return [quote for quote in self.view.quotes if quote.job_id == job_id]

    def get_job_invoices(self, job_id: str) -> list[Invoice]:
        return [invoice for invoice in self.view.invoices if invoice.job_id == job_id]

    # ------------------------------------------------------------------
    # Totals and settings
    # ------------------------------------------------------------------

    def calculate_quote_total(self, items: Iterable[Any], tax_rate: float | None = None) -> Totals:
        settings = self.state.settings
        rate = settings.default_tax_rate if tax_rate is None else tax_rate
        return compute_totals(_line_items(items), rate, settings.enable_tax)

    def calculate_invoice_total(self, items: Iterable[Any], tax_rate: float | None = None) -> Totals:
        return self.calculate_quote_total(items, tax_rate)

    def get_settings(self) -> BusinessSettings:
        return self.state.settings

    def update_settings(self, **updates: Any) -> BusinessSettings:
        current = self.state.settings
        fields = _normalize(BusinessSettings, updates)
        fields.pop("created_at", None)
        self.state.settings = BusinessSettings.model_validate(
            {**current.model_dump(), **fields, "updated_at": now_iso()}
        )
        self._save()
        return self.state.settings

    def reset_settings(self) -> BusinessSettings:
        self.state.settings = BusinessSettings()
        self._save()
        return self.state.settings

    # ------------------------------------------------------------------
    # Session and workspace membership
    # ------------------------------------------------------------------

    def set_authenticated_user(self, user: AuthUser | Mapping[str, Any]) -> None:
        """Sign *user* in and make their workspace the active one."""
        if not isinstance(user, AuthUser):
            user = AuthUser.model_validate(user)
        state = self.state
        logger.info("Signing in %s", user.email)

        state.authenticated_user = user
        state.current_user_id = user.id
        state.user_email = user.email
        state.workspace_id = user.workspace_id
        state.workspace_name = user.workspace_name
        state.role = user.role
        state.settings = state.settings.model_copy(
            update={
                "business_name": user.workspace_name or state.settings.business_name,
                "business_email": user.email or state.settings.business_email,
                "updated_at": now_iso(),
            }
        )
        self.outbox.ensure(user.id)
        state.last_sync_by_user.setdefault(user.id, None)
        self.engine.clear_error()

        self.refresh_view()
        self._save()

    def clear_authentication(self, *, save: bool = True) -> None:
        """Sign out. Slices, outboxes and cursors stay for the next sign-in.

        Pass ``save=False`` when the caller writes the state itself.
        """
        state = self.state
        state.authenticated_user = None
        state.current_user_id = None
        state.user_email = None
        state.workspace_id = None
        state.workspace_name = None
        state.role = None
        self.view = WorkspaceSlice()
        if save:
            self._save()

    def logout(self) -> None:
        state = self.state
        state.user_email = None
        state.role = None
        state.workspace_id = None
        self._save()

    async def link_business_owner(self, name: str, owner_email: str) -> str | None:
        """Create a workspace owned by *owner_email*.

        Returns the invite code for teammates, or None when the remote
        refused or could not be reached.
        """
        try:
            result = await run_sync(self.client.create_workspace, name, owner_email)
        except RemoteError as exc:
            logger.error("Could not create workspace %r: %s", name, exc)
            return None
        if not result or not result.get("workspaceId"):
            return None

        state = self.state
        state.workspace_id = result["workspaceId"]
        state.workspace_name = name
        state.role = "owner"
        state.user_email = owner_email
        self.refresh_view()
        self._save()
        return result.get("inviteCode") or ""

    async def accept_business_invite(self, email: str, invite_code: str) -> bool:
        try:
            result = await run_sync(
                self.client.accept_invite, email, invite_code, self.state.device_id
            )
        except RemoteError as exc:
            logger.error("Could not accept invite %s: %s", invite_code, exc)
            return False
        if not result or not result.get("workspaceId"):
            return False

        state = self.state
        state.workspace_id = result["workspaceId"]
        state.role = result.get("role") or "member"
        state.user_email = email
        self.refresh_view()
        self._save()
        return True

    async def invite_members(self, emails: list[str]) -> list[dict[str, Any]]:
        workspace_id = self.state.workspace_id
        if not workspace_id:
            return []
        try:
            return await run_sync(self.client.create_invites, workspace_id, emails)
        except RemoteError as exc:
            logger.error("Could not create invites: %s", exc)
            return []

    async def list_workspace_members(self) -> list[dict[str, Any]]:
        workspace_id = self.state.workspace_id
        if not workspace_id:
            return []
        try:
            return await run_sync(self.client.list_members, workspace_id)
        except RemoteError as exc:
            logger.error("Could not list members: %s", exc)
            return []

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_now(self) -> SyncReport | None:
        return await self.engine.sync_now()

    async def full_sync(self) -> SyncReport | None:
        return await self.engine.full_sync()
