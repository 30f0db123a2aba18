from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

from backend.services.errors import PermissionDenied

logger = logging.getLogger(__name__)


class Capability(str, enum.Enum):
    create = "purchases.create"
    edit = "purchases.edit"
    submit = "purchases.submit"
    approve = "purchases.approve"
    execute = "purchases.execute"
    cancel = "purchases.cancel"
    restore = "purchases.restore"
    delete = "purchases.delete"
    view = "purchases.view"
    view_stats = "purchases.view_stats"
    adjust_stock = "inventory.adjust"
    manage_master_data = "masterdata.manage"


class Role(str, enum.Enum):
    admin = "admin"
    purchasing_manager = "purchasing_manager"
    purchasing_officer = "purchasing_officer"
    storekeeper = "storekeeper"
    viewer = "viewer"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.admin: frozenset(Capability),
    Role.purchasing_manager: frozenset(
        {
            Capability.create,
            Capability.edit,
            Capability.submit,
            Capability.approve,
            Capability.cancel,
            Capability.restore,
            Capability.delete,
            Capability.view,
            Capability.view_stats,
        }
    ),
    Role.purchasing_officer: frozenset(
        {
            Capability.create,
            Capability.edit,
            Capability.submit,
            Capability.cancel,
            Capability.view,
        }
    ),
    Role.storekeeper: frozenset(
        {
            Capability.execute,
            Capability.adjust_stock,
            Capability.view,
        }
    ),
    Role.viewer: frozenset({Capability.view, Capability.view_stats}),
}


@dataclass(frozen=True)
class ActorCapabilities:
    """
    Identité déjà authentifiée + ce qu'elle a le droit de faire.

    Le coeur ne lit jamais de token : l'appelant fournit cette valeur.
    """

    actor_id: str
    capabilities: frozenset[Capability] = field(default_factory=frozenset)

    @classmethod
    def for_role(cls, actor_id: str, role: str) -> "ActorCapabilities":
        try:
            role_enum = Role(role)
        except ValueError:
            logger.warning("Unknown role %r for actor %s", role, actor_id)
            return cls(actor_id=actor_id)
        return cls(actor_id=actor_id, capabilities=ROLE_CAPABILITIES[role_enum])

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            logger.warning("Actor %s denied %s", self.actor_id, capability.value)
            raise PermissionDenied(f"Permission denied: {capability.value} required")
