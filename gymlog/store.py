"""Entry store client: CRUD for workout entries against a remote table.

Two backends implement :class:`EntryStore`:

* :class:`SupabaseEntryStore` talks to the hosted Supabase/PostgREST table.
* :class:`LocalEntryStore` keeps entries in a JSON file (development and tests).

Every call is issued exactly once; failures surface as :class:`StoreError`
(or :class:`SessionExpiredError` when the hosted backend rejects the token) and
are never retried here. Mutations always carry the owner id so a request made
on behalf of one user cannot touch another user's rows.
"""
import os
import json
import logging
import uuid
from threading import Lock
from typing import Optional

import httpx
from flask import current_app, session
from postgrest import AsyncPostgrestClient
from postgrest.exceptions import APIError

from .models import EntryChanges, NewEntry, WorkoutEntry

DEFAULT_TABLE = "workout_entries"
DATA_LOCK = Lock()

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a store call fails or matches no row."""


class EntryStore:
    """Port implemented by each persistence backend."""

    name = "abstract"

    async def fetch_entries(self, user_id: str, date: Optional[str] = None) -> list[WorkoutEntry]:
        """Return the user's entries, newest date first, or one day ordered by set number."""
        raise NotImplementedError

    async def create_entry(self, entry: NewEntry) -> None:
        raise NotImplementedError

    async def update_entry(self, entry_id: str, user_id: str, changes: EntryChanges) -> None:
        raise NotImplementedError

    async def delete_entry(self, entry_id: str, user_id: str) -> None:
        raise NotImplementedError


def _sort_rows(rows: list[dict], date: Optional[str]) -> list[dict]:
    if date is not None:
        return sorted(rows, key=lambda r: r.get("set_number", 0))
    return sorted(rows, key=lambda r: r["date"], reverse=True)


class LocalEntryStore(EntryStore):
    """JSON-file backed store, persisted atomically under a process lock."""

    name = "local"

    def __init__(self, path: str) -> None:
        self.path = path

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {"entries": []}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Failed to read data file '%s': %s", self.path, e)
            raise StoreError(f"Unable to read entry data: {e}") from e
        data.setdefault("entries", [])
        return data

    def _save(self, data: dict) -> None:
        tmp_file = self.path + ".tmp"
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_file, self.path)
        except OSError as e:
            logger.error("Failed to write data file '%s': %s", self.path, e)
            try:
                if os.path.exists(tmp_file):
                    os.remove(tmp_file)
            except OSError:
                pass
            raise StoreError(f"Unable to persist entry data: {e}") from e

    async def fetch_entries(self, user_id: str, date: Optional[str] = None) -> list[WorkoutEntry]:
        with DATA_LOCK:
            rows = self._load()["entries"]
        rows = [r for r in rows if r.get("user_id") == user_id]
        if date is not None:
            rows = [r for r in rows if r.get("date") == date]
        return [WorkoutEntry.from_row(r) for r in _sort_rows(rows, date)]

    async def create_entry(self, entry: NewEntry) -> None:
        row = entry.to_row()
        row["id"] = uuid.uuid4().hex
        with DATA_LOCK:
            data = self._load()
            data["entries"].append(row)
            self._save(data)

    def _find(self, rows: list[dict], entry_id: str, user_id: str) -> int:
        for i, row in enumerate(rows):
            if row.get("id") == entry_id and row.get("user_id") == user_id:
                return i
        raise StoreError(f"No entry {entry_id!r} owned by this user.")

    async def update_entry(self, entry_id: str, user_id: str, changes: EntryChanges) -> None:
        with DATA_LOCK:
            data = self._load()
            idx = self._find(data["entries"], entry_id, user_id)
            data["entries"][idx].update(changes.to_row())
            self._save(data)

    async def delete_entry(self, entry_id: str, user_id: str) -> None:
        with DATA_LOCK:
            data = self._load()
            idx = self._find(data["entries"], entry_id, user_id)
            del data["entries"][idx]
            self._save(data)


class SessionExpiredError(Exception):
    """The hosted backend rejected the user's access token."""


# PostgREST codes for an invalid or expired JWT.
JWT_ERROR_CODES = {"PGRST301", "PGRST303"}


def _rest_client(url: str, key: str) -> AsyncPostgrestClient:
    return AsyncPostgrestClient(
        f"{url.rstrip('/')}/rest/v1",
        headers={"apikey": key, "Authorization": f"Bearer {key}"},
    )


class SupabaseEntryStore(EntryStore):
    """Hosted Supabase table accessed through the async PostgREST client.

    A client is opened and closed per call since Flask runs each async view in
    its own event loop. The signed-in user's access token, when present,
    replaces the anon key as bearer.
    """

    name = "supabase"

    def __init__(self, url: str, key: str, table: str = DEFAULT_TABLE,
                 access_token: Optional[str] = None, client_factory=_rest_client) -> None:
        self.url = url
        self.key = key
        self.table = table
        self.access_token = access_token
        self._client_factory = client_factory

    async def _execute(self, operation: str, build):
        try:
            async with self._client_factory(self.url, self.key) as client:
                if self.access_token:
                    client.auth(self.access_token)
                query = build(client.from_(self.table))
                return await query.execute()
        except APIError as e:
            if e.code in JWT_ERROR_CODES:
                logger.warning("Entry store %s rejected the access token: %s", operation, e)
                raise SessionExpiredError(str(e)) from e
            logger.error("Entry store %s failed: %s", operation, e)
            raise StoreError(f"{operation} failed: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Entry store %s failed: %s", operation, e)
            raise StoreError(f"{operation} failed: {e}") from e

    async def fetch_entries(self, user_id: str, date: Optional[str] = None) -> list[WorkoutEntry]:
        def build(table):
            query = table.select("*").eq("user_id", user_id)
            if date is not None:
                return query.eq("date", date).order("set_number")
            return query.order("date", desc=True)

        response = await self._execute("fetch", build)
        return [WorkoutEntry.from_row(r) for r in (response.data or [])]

    async def create_entry(self, entry: NewEntry) -> None:
        await self._execute("create", lambda t: t.insert(entry.to_row()))

    async def update_entry(self, entry_id: str, user_id: str, changes: EntryChanges) -> None:
        response = await self._execute(
            "update",
            lambda t: t.update(changes.to_row()).eq("id", entry_id).eq("user_id", user_id),
        )
        if not response.data:
            raise StoreError(f"No entry {entry_id!r} owned by this user.")

    async def delete_entry(self, entry_id: str, user_id: str) -> None:
        response = await self._execute(
            "delete",
            lambda t: t.delete().eq("id", entry_id).eq("user_id", user_id),
        )
        if not response.data:
            raise StoreError(f"No entry {entry_id!r} owned by this user.")


def get_store() -> EntryStore:
    """Return the configured store for the current request."""
    cfg = current_app.config
    if cfg["STORE_BACKEND"] == "supabase":
        return SupabaseEntryStore(
            cfg["SUPABASE_URL"],
            cfg["SUPABASE_KEY"],
            cfg["ENTRY_TABLE"],
            access_token=session.get("access_token"),
        )
    return LocalEntryStore(cfg["DATA_FILE"])
