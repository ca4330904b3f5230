# Overview: Remote-first reconciliation store with a local JSON mirror for offline work.

"""
Persistence gateway.

The gateway wraps a remote store (database or HTTP) and a local mirror.

WRITE PATH:
- remote reachable: write remotely, merge the stored result into the mirror
- remote unreachable: merge into the mirror, flag pendingSync, queue the
  partial record itself for sync, report stale

READ PATH: remote first (merged into the mirror), mirror on failure.
Entries still pending in the mirror win over the remote copy until pushed.

Pending entries are pushed oldest first before any other remote call, so a
reconnect drains the queue before new writes land.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Optional

import httpx

from gasdsr.time_utils import format_business_date, parse_business_date
from gasdsr.validation import ValidationError, validate_entry_payload
from .normalizer import normalize_name
from .stock_entry_service import StockEntryError
from .stock_records import DailyStockEntry, UpsertResult, apply_patch

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "Saved locally, will sync when online"

ENTRIES_PATH = "/api/daily-stock-entries"

_OPENING_KEYS = ("openingFull", "openingEmpty", "openingLocked")


class RemoteUnavailableError(Exception):
    """Network or backend failure of a remote store."""
    pass


def _wire(entry: DailyStockEntry) -> dict:
    data = entry.to_dict()
    data.pop("pendingSync", None)
    return data


def combine_patches(earlier: Optional[dict], later: dict) -> dict:
    """
    Fold two partial records for the same row into one, later fields
    winning. An unlocked opening in ``later`` does not replace a locked
    opening set by ``earlier``.
    """
    if not earlier:
        return dict(later)
    incoming = dict(later)
    earlier_locks = (
        any(earlier.get(key) is not None for key in ("openingFull", "openingEmpty"))
        and earlier.get("openingLocked", True) is not False
    )
    if earlier_locks and incoming.get("openingLocked", True) is False:
        for key in _OPENING_KEYS:
            incoming.pop(key, None)
    combined = dict(earlier)
    combined.update(incoming)
    return combined


class HttpReconciliationStore:
    """
    Reconciliation store over the DSR HTTP API.

    Transport errors and 5xx responses raise RemoteUnavailableError; 400
    raises ValidationError; other 4xx raise StockEntryError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs):
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 500:
            raise RemoteUnavailableError(f"{method} {path} returned {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"{method} {path} returned invalid JSON") from e
        if not isinstance(body, dict):
            raise RemoteUnavailableError(f"{method} {path} returned a non-object JSON body")

        if response.status_code == 400:
            raise ValidationError(body.get("error") or "Invalid request")
        if response.status_code >= 400:
            raise StockEntryError(body.get("error") or f"HTTP {response.status_code}")
        return body.get("data")

    @staticmethod
    def _scope_params(params: dict, employee_id: Optional[str]) -> dict:
        if employee_id:
            params["employeeId"] = employee_id
        return params

    def list_for_date(self, day: date, employee_id: Optional[str] = None) -> list[DailyStockEntry]:
        params = self._scope_params({"date": format_business_date(day)}, employee_id)
        data = self._request("GET", ENTRIES_PATH, params=params)
        return [DailyStockEntry.from_dict(row) for row in data or []]

    def previous(self, item_name: str, day: date, employee_id: Optional[str] = None) -> DailyStockEntry | None:
        params = self._scope_params({"itemName": item_name, "date": format_business_date(day)}, employee_id)
        data = self._request("GET", f"{ENTRIES_PATH}/previous", params=params)
        return DailyStockEntry.from_dict(data) if data else None

    def upsert(self, patch: dict) -> UpsertResult:
        data = self._request("POST", ENTRIES_PATH, json=patch)
        return UpsertResult(entry=DailyStockEntry.from_dict(data))


class LocalEntryCache:
    """
    Offline mirror: one JSON document holding the full entry list under a
    single namespaced key. Every write rewrites the whole list.

    An entry written while offline carries pendingSync plus the partial
    record the caller sent (pendingPatch). Successive offline writes to the
    same row combine their patches; sync pushes the combined patch, never
    the mirrored full entry.

    path=None keeps the document in memory (tests, one-shot runs).
    """

    def __init__(self, path: Optional[str] = None, key: str = "dsr-entries"):
        self.path = path
        self.key = key
        self._memory: dict = {}

    def _read_document(self) -> dict:
        if self.path is None:
            return self._memory
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                doc = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Local cache %s is unreadable (%s); treating it as empty", self.path, e)
            return {}
        if not isinstance(doc, dict):
            logger.warning("Local cache %s is not a JSON object; treating it as empty", self.path)
            return {}
        return doc

    def _read(self) -> list[dict]:
        rows = self._read_document().get(self.key)
        return [row for row in rows if isinstance(row, dict)] if isinstance(rows, list) else []

    def _write(self, rows: list[dict]) -> None:
        doc = dict(self._read_document())
        doc[self.key] = rows
        if self.path is None:
            self._memory = doc
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2)
        os.replace(tmp_path, self.path)

    def _load_rows(self) -> list[tuple[DailyStockEntry, Optional[dict]]]:
        rows = []
        for row in self._read():
            try:
                entry = DailyStockEntry.from_dict(row)
            except ValueError as e:
                logger.warning("Dropping unreadable cached entry: %s", e)
                continue
            patch = row.get("pendingPatch")
            rows.append((entry, patch if entry.pending_sync and isinstance(patch, dict) else None))
        return rows

    def _store_rows(self, rows: list[tuple[DailyStockEntry, Optional[dict]]]) -> None:
        serialized = []
        for entry, patch in rows:
            data = entry.to_dict()
            if entry.pending_sync and patch:
                data["pendingPatch"] = patch
            serialized.append(data)
        self._write(serialized)

    def load(self) -> list[DailyStockEntry]:
        return [entry for entry, _ in self._load_rows()]

    def get(self, day: date, item_name: str, employee_id: Optional[str] = None) -> DailyStockEntry | None:
        scope = (format_business_date(day), normalize_name(item_name), employee_id or "")
        return next((e for e in self.load() if e.scope_key == scope), None)

    def merge(
        self,
        entry: DailyStockEntry,
        *,
        pending: bool = False,
        patch: Optional[dict] = None,
    ) -> DailyStockEntry:
        """
        Replace the entry with the same (date, item key, employee) or append it.

        With pending=True, ``patch`` is combined with any patch still queued
        for that row. A non-pending merge clears the queued patch.
        """
        stored = replace(entry, pending_sync=pending)
        rows = []
        queued = None
        for cached, cached_patch in self._load_rows():
            if cached.scope_key == stored.scope_key:
                queued = cached_patch
            else:
                rows.append((cached, cached_patch))
        if pending and patch is not None:
            queued = combine_patches(queued, patch)
        rows.append((stored, queued if pending else None))
        self._store_rows(rows)
        return stored

    def absorb(self, remote_entries: list[DailyStockEntry]) -> None:
        """Take remote copies, except where a local edit is still pending."""
        rows = self._load_rows()
        index = {entry.scope_key: i for i, (entry, _) in enumerate(rows)}
        for remote in remote_entries:
            i = index.get(remote.scope_key)
            if i is None:
                index[remote.scope_key] = len(rows)
                rows.append((replace(remote, pending_sync=False), None))
            elif not rows[i][0].pending_sync:
                rows[i] = (replace(remote, pending_sync=False), None)
        self._store_rows(rows)

    def entries_for(self, day: date, employee_id: Optional[str] = None) -> list[DailyStockEntry]:
        wanted = format_business_date(day)
        return sorted(
            (e for e in self.load()
             if format_business_date(e.date) == wanted and (e.employee_id or None) == (employee_id or None)),
            key=lambda e: e.item_key,
        )

    def pending(self) -> list[DailyStockEntry]:
        """Entries awaiting sync, oldest write first."""
        return [e for e in self.load() if e.pending_sync]

    def pending_patches(self) -> list[tuple[DailyStockEntry, dict]]:
        """
        (entry, patch to push) for every pending row, oldest write first.
        Rows queued without a patch push their full wire record.
        """
        return [
            (entry, patch if patch is not None else _wire(entry))
            for entry, patch in self._load_rows()
            if entry.pending_sync
        ]

    def previous(self, item_name: str, day: date, employee_id: Optional[str] = None) -> DailyStockEntry | None:
        key = normalize_name(item_name)
        candidates = [
            e for e in self.load()
            if e.item_key == key and e.date < day and (e.employee_id or None) == (employee_id or None)
        ]
        return max(candidates, key=lambda e: e.date, default=None)


@dataclass
class SyncReport:
    pushed: int = 0
    remaining: int = 0
    rejected: list[str] = field(default_factory=list)
    online: bool = True

    def to_dict(self) -> dict:
        return {
            "pushed": self.pushed,
            "remaining": self.remaining,
            "rejected": self.rejected,
            "online": self.online,
        }


class PersistenceGateway:
    """
    Reconciliation store with explicit online/offline state.

    ``online`` reflects the outcome of the most recent remote call.
    """

    def __init__(self, remote, cache: LocalEntryCache):
        self.remote = remote
        self.cache = cache
        self.online = True

    def load(self) -> list[DailyStockEntry]:
        """Everything in the local mirror."""
        return self.cache.load()

    def _offline(self, action: str, error: RemoteUnavailableError) -> None:
        if self.online:
            logger.warning("Remote store unavailable during %s (%s); using local mirror", action, error)
        self.online = False

    def _push_pending(self) -> SyncReport:
        """Push pending entries oldest first. Raises RemoteUnavailableError on the first network failure."""
        report = SyncReport()
        for entry, patch in self.cache.pending_patches():
            try:
                result = self.remote.upsert(patch)
            except (ValidationError, StockEntryError) as e:
                logger.error("Remote rejected pending entry %s: %s", entry.scope_key, e)
                report.rejected.append(f"{format_business_date(entry.date)} {entry.item_name}: {e}")
                continue
            self.cache.merge(result.entry, pending=False)
            report.pushed += 1
        if report.pushed:
            logger.info("Synced %d pending entr%s", report.pushed, "y" if report.pushed == 1 else "ies")
        report.remaining = len(self.cache.pending())
        return report

    def sync_pending(self) -> SyncReport:
        try:
            report = self._push_pending()
        except RemoteUnavailableError as e:
            self._offline("sync", e)
            return SyncReport(remaining=len(self.cache.pending()), online=False)
        self.online = True
        return report

    def upsert(self, patch: dict) -> UpsertResult:
        """
        Write a partial entry. Invalid input raises ValidationError before
        any persistence attempt; a remote failure degrades to a pending
        local write with persisted=False.
        """
        patch = validate_entry_payload(patch)
        try:
            self._push_pending()
            result = self.remote.upsert(patch)
        except RemoteUnavailableError as e:
            self._offline("upsert", e)
            existing = self.cache.get(
                parse_business_date(patch["date"]), patch["itemName"], patch.get("employeeId"),
            )
            stored = self.cache.merge(apply_patch(existing, patch), pending=True, patch=patch)
            return UpsertResult(entry=stored, persisted=False, message=OFFLINE_MESSAGE)

        self.online = True
        stored = self.cache.merge(result.entry, pending=False)
        return UpsertResult(entry=stored, persisted=True, message=result.message)

    def list_for_date(self, day: date, employee_id: Optional[str] = None) -> list[DailyStockEntry]:
        try:
            self._push_pending()
            remote_entries = self.remote.list_for_date(day, employee_id)
        except RemoteUnavailableError as e:
            self._offline("list", e)
            return self.cache.entries_for(day, employee_id)

        self.online = True
        self.cache.absorb(remote_entries)
        merged = {e.scope_key: e for e in remote_entries}
        for local in self.cache.entries_for(day, employee_id):
            if local.pending_sync:
                merged[local.scope_key] = local
        return sorted(merged.values(), key=lambda e: e.item_key)

    def previous(self, item_name: str, day: date, employee_id: Optional[str] = None) -> DailyStockEntry | None:
        try:
            found = self.remote.previous(item_name, day, employee_id)
        except RemoteUnavailableError as e:
            self._offline("previous lookup", e)
            return self.cache.previous(item_name, day, employee_id)
        self.online = True
        return found
