"""Read-through group resolution.

The store is consulted first; on a miss the principal source is asked and the
answer is written back before it is returned.  Absence upstream is never
cached, so a principal created later is picked up on the next lookup.
"""

from __future__ import annotations

import dataclasses
from typing import Literal, Protocol, Union

from core.logger import GroupkeeperLogger
from core.store import MembershipStore

logger = GroupkeeperLogger.get_logger("resolver")


class PrincipalSource(Protocol):
    """The two roster calls the core needs from an identity provider."""

    async def fetch_principal(self, identifier: str) -> frozenset[str] | None: ...  # noqa: E704

    async def fetch_all_principals(self) -> dict[str, frozenset[str]]: ...  # noqa: E704


@dataclasses.dataclass(frozen=True, slots=True)
class GroupsFound:
    identifier: str
    groups: frozenset[str]
    source: Literal["cache", "provider"]


@dataclasses.dataclass(frozen=True, slots=True)
class NotFoundOutcome:
    """The provider confirmed *identifier* does not exist."""

    identifier: str


Resolution = Union[GroupsFound, NotFoundOutcome]


class GroupResolver:
    def __init__(self, store: MembershipStore, provider: PrincipalSource) -> None:
        self._store = store
        self._provider = provider

    async def resolve(self, identifier: str) -> Resolution:
        """Return *identifier*'s groups, or :class:`NotFoundOutcome`.

        Provider and store failures (``AuthFailure``, ``ProviderUnavailable``,
        ``StoreUnavailable``) propagate to the caller untouched.

        Raises:
            ValueError: If *identifier* is blank.
        """
        identifier = identifier.strip()
        if not identifier:
            raise ValueError("identifier must not be blank")

        cached = self._store.get(identifier)
        if cached is not None:
            logger.info("Membership cache hit", extra={"identifier": identifier, "group_count": len(cached)})
            return GroupsFound(identifier, cached, "cache")

        logger.info("Membership cache miss, asking provider", extra={"identifier": identifier})
        groups = await self._provider.fetch_principal(identifier)
        if groups is None:
            logger.info("Principal not found upstream", extra={"identifier": identifier})
            return NotFoundOutcome(identifier)

        entry = await self._store.upsert(identifier, groups)
        logger.info("Backfilled membership", extra={"identifier": identifier, "group_count": len(entry.groups)})
        return GroupsFound(identifier, entry.groups, "provider")
