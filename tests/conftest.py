import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.store import MembershipStore


class StubProvider:
    """In-memory stand-in for ProviderClient; counts roster pulls."""

    def __init__(self, roster: dict | None = None, error: Exception | None = None) -> None:
        self.roster = dict(roster or {})
        self.error = error
        self.calls = 0

    async def fetch_all_principals(self) -> dict[str, frozenset[str]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {name: frozenset(groups) for name, groups in self.roster.items()}

    async def fetch_principal(self, identifier: str) -> frozenset[str] | None:
        return (await self.fetch_all_principals()).get(identifier)


class ForbiddenProvider:
    """Fails the test if the provider is contacted at all."""

    async def fetch_all_principals(self):
        raise AssertionError("provider must not be called")

    async def fetch_principal(self, identifier):
        raise AssertionError("provider must not be called")


@pytest.fixture()
def store(tmp_path):
    return MembershipStore(str(tmp_path / "memberships.json"))
