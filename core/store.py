import asyncio
import contextlib
import dataclasses
import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Iterable, Iterator

from core.logger import GroupkeeperLogger

logger = GroupkeeperLogger.get_logger("store")


class StoreUnavailable(Exception):
    """The membership file could not be read, decoded, or written."""


@dataclasses.dataclass(frozen=True, slots=True)
class MembershipEntry:
    groups: frozenset[str]
    updated_at: datetime

    def to_json(self) -> dict:
        return {"groups": sorted(self.groups), "updated_at": self.updated_at.isoformat()}

    @classmethod
    def from_json(cls, raw: dict) -> "MembershipEntry":
        return cls(
            groups=frozenset(raw.get("groups") or ()),
            updated_at=datetime.fromisoformat(raw["updated_at"]),
        )


class MembershipStore:
    """Principal → group-set cache backed by a local JSON flat-file.

    Lookups are served from memory.  Writes hold an asyncio lock, replace the
    file atomically, and only then swap the new immutable
    :class:`MembershipEntry` objects in, so readers see either the old or the
    new group set and never one whose write failed.
    """

    def __init__(self, path: str = "data/memberships.json") -> None:
        self.path = path
        self._lock = asyncio.Lock()
        self._entries: dict[str, MembershipEntry] = self._load()
        logger.info("Loaded membership entries", extra={"path": path, "entry_count": len(self._entries)})

    def _load(self) -> dict[str, MembershipEntry]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            logger.info("Membership file not found, starting empty", extra={"path": self.path})
            return {}
        except OSError as exc:
            logger.critical("Membership file unreadable", extra={"path": self.path, "error": str(exc)})
            raise StoreUnavailable(f"Cannot read membership file '{self.path}': {exc}") from exc
        except json.JSONDecodeError as exc:
            logger.critical("Invalid JSON in membership file", extra={"path": self.path, "error": str(exc)})
            raise StoreUnavailable(f"Invalid JSON in membership file '{self.path}': {exc}") from exc

        try:
            return {key: MembershipEntry.from_json(value) for key, value in raw.items()}
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise StoreUnavailable(f"Malformed membership file '{self.path}': {exc}") from exc

    # ── reads ────────────────────────────────────────────────────────────

    def get(self, identifier: str) -> frozenset[str] | None:
        """Return the cached groups for *identifier*, or ``None`` when absent.

        An empty frozenset means "known, no groups" and is a hit.
        """
        entry = self._entries.get(identifier)
        return None if entry is None else entry.groups

    def get_entry(self, identifier: str) -> MembershipEntry | None:
        return self._entries.get(identifier)

    def identifiers(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ── writes ───────────────────────────────────────────────────────────

    async def upsert(self, identifier: str, groups: Iterable[str]) -> MembershipEntry:
        """Create or replace *identifier*'s groups and persist the table.

        Replaces, never merges.  On a persistence failure nothing changes and
        :class:`StoreUnavailable` is raised.
        """
        return (await self.upsert_many([(identifier, groups)]))[identifier]

    async def upsert_many(self, items: Iterable[tuple[str, Iterable[str]]]) -> dict[str, MembershipEntry]:
        """Replace the groups of every identifier in *items* with a single file write.

        The new entries become visible to readers only after the file has been
        replaced, and all of them at once.  If the write fails none of them is
        applied.
        """
        now = datetime.now(timezone.utc)
        staged = {identifier: MembershipEntry(frozenset(groups), now) for identifier, groups in items}
        if not staged:
            return staged

        async with self._lock:
            merged = {**self._entries, **staged}
            snapshot = {key: value.to_json() for key, value in merged.items()}
            try:
                await asyncio.to_thread(self._write_sync, snapshot)
            except OSError as exc:
                logger.error("Failed to persist memberships", extra={"batch_size": len(staged), "path": self.path, "error": str(exc)})
                raise StoreUnavailable(f"Cannot write membership file '{self.path}': {exc}") from exc
            self._entries = merged

        logger.debug("Upserted memberships", extra={"batch_size": len(staged), "entry_count": len(merged)})
        return staged

    def _write_sync(self, snapshot: dict) -> None:
        """Atomic temp-file write; runs in a worker thread."""
        dir_name = os.path.dirname(self.path) or "."
        os.makedirs(dir_name, exist_ok=True)
        tmp = tempfile.NamedTemporaryFile("w", dir=dir_name, delete=False, suffix=".tmp", encoding="utf-8")
        try:
            with tmp:
                json.dump(snapshot, tmp, indent=2, sort_keys=True)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp.name, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp.name)
            raise
