"""Persistence adapter for the store state.

Everything the store needs across restarts (workspace and legacy slices,
outboxes, cursors, settings, session and device id) lives in one JSON
blob::

    {"version": 7, "savedAt": "...", "state": {...camelCase...}}

Key design choices:

* **Atomic writes** -- the blob is written to a temp file in the same
  directory and moved into place with ``os.replace()``.
* **Snapshot then write** -- ``snapshot()`` serializes on the caller's
  thread (the event loop) and ``write()`` may run in a worker thread.
  Snapshots are numbered, and a write older than one already on disk is
  dropped, so overlapping background writes never go back in time.
* **Versioned** -- older blobs are migrated on load (see
  ``migrations``); newer ones are refused.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ..errors import PersistenceError
from .migrations import CURRENT_VERSION, migrate
from .models import StoreState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    generation: int
    payload: str


class StateStore:
    """Load and save the store state at *path*."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._generation = 0
        self._written = 0

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> StoreState:
        """Read, migrate and validate the blob.

        Returns a fresh ``StoreState`` when no file exists yet.

        Raises:
            PersistenceError: On unreadable JSON, an unknown future
                version, or data that fails validation after migration.
        """
        if not self._path.exists():
            logger.info("No state file at %s, starting empty", self._path)
            return StoreState()

        try:
            with open(self._path, encoding="utf-8") as fh:
                blob = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read state file {self._path}: {exc}") from exc

        if not isinstance(blob, dict):
            raise PersistenceError(f"State file {self._path} does not hold an object")

        version = int(blob.get("version") or 1)
        raw = blob.get("state")
        if raw is None:
            # Pre-envelope blobs stored the state at the root
            raw = {k: v for k, v in blob.items() if k not in ("version", "savedAt")}

        try:
            migrated = migrate(raw, version)
        except ValueError as exc:
            raise PersistenceError(str(exc)) from exc

        try:
            return StoreState.model_validate(migrated)
        except ValidationError as exc:
            raise PersistenceError(f"State file {self._path} is invalid: {exc}") from exc

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def snapshot(self, state: StoreState) -> Snapshot:
        blob = {
            "version": CURRENT_VERSION,
            "savedAt": datetime.now(timezone.utc).isoformat(),
            "state": state.model_dump(by_alias=True, mode="json"),
        }
        with self._lock:
            self._generation += 1
            generation = self._generation
        return Snapshot(generation=generation, payload=json.dumps(blob, indent=2))

    def write(self, snapshot: Snapshot) -> None:
        """Atomically replace the file with *snapshot* unless a newer one is already there."""
        with self._lock:
            if snapshot.generation < self._written:
                logger.debug(
                    "Dropping stale snapshot %d (on disk: %d)",
                    snapshot.generation,
                    self._written,
                )
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(snapshot.payload)
                os.replace(tmp_path, self._path)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
            self._written = snapshot.generation

    def save(self, state: StoreState) -> None:
        self.write(self.snapshot(state))
