"""Pydantic models for the identity provider's two endpoints.

``POST /auth/get-token/`` answers with a :class:`TokenResponse`;
``GET /admin/users`` answers with a :class:`RosterResponse` keyed by username.
Provider-side metadata the service never interprets is kept as-is
(``extra="allow"``) so records can be passed through untouched.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TokenData(BaseModel):
    """Payload of a successful token request."""

    token: Optional[str] = None
    expires_in: float

    model_config = {"populate_by_name": True}


class TokenResponse(BaseModel):
    """Envelope returned by ``/auth/get-token/``."""

    data: TokenData

    model_config = {"populate_by_name": True}


class ProviderUser(BaseModel):
    """A principal as served by ``/admin/users``."""

    username: Optional[str] = None
    uuid: Optional[str] = None
    email: Optional[str] = None
    enabled: Optional[bool] = None
    status: Optional[str] = None
    site_ids: List[int] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    groups: List[str]

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def group_set(self) -> frozenset[str]:
        """Groups as a set; duplicate names from the provider collapse."""
        return frozenset(self.groups)


class RosterResponse(BaseModel):
    """Envelope returned by ``/admin/users``: username → record."""

    data: Dict[str, ProviderUser]

    model_config = {"populate_by_name": True}
