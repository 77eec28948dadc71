"""Core membership engine — store, read-through resolver, reconciliation, logging.

This package is framework-agnostic. It must NEVER import from ``bot/`` or ``sdk/``.
"""

from core.identity import get_identity
from core.logger import GroupkeeperLogger
from core.reconcile import ReconcileReport, ReconciliationError, ReconciliationScheduler
from core.resolver import GroupResolver, GroupsFound, NotFoundOutcome, Resolution
from core.store import MembershipEntry, MembershipStore, StoreUnavailable

__all__ = [
    "get_identity",
    "GroupkeeperLogger",
    "MembershipEntry",
    "MembershipStore",
    "StoreUnavailable",
    "GroupResolver",
    "GroupsFound",
    "NotFoundOutcome",
    "Resolution",
    "ReconcileReport",
    "ReconciliationError",
    "ReconciliationScheduler",
]
