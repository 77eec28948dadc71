import dataclasses

from core.reconcile import ReconciliationScheduler
from core.resolver import GroupResolver
from core.store import MembershipStore


@dataclasses.dataclass
class BotContext:
    """Long-lived collaborators handed to every command handler."""

    store: MembershipStore
    resolver: GroupResolver
    scheduler: ReconciliationScheduler
    admins: frozenset[int] = frozenset()

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admins
