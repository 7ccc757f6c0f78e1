"""
Role-Based Access Control (RBAC) Engine
=======================================

First evaluation stage. A role grants an action when its permission
tokens contain the action or the wildcard ``*``. Each role may inherit
the tokens of the roles it lists directly; inheritance is exactly one
level deep, so a role never receives tokens its inherited roles only
inherit themselves.

Unknown roles silently degrade to the lowest-privilege role (``worker``).
"""

import logging
from typing import List

from .exceptions import PolicyConfigurationError
from .policies import DEFAULT_ROLE, PermissionResult, RoleHierarchyEntry, UserContext
from .policy_store import PolicyStore

logger = logging.getLogger(__name__)

CHECK = 'rbac'


class RBACEngine:
    """
    RBAC decision engine over the policy store's role hierarchy.
    """

    def __init__(self, store: PolicyStore):
        self.store = store

    def resolve_role_or_default(self, role: str) -> RoleHierarchyEntry:
        """
        Resolve a role to its hierarchy entry, falling back to ``worker``.

        Raises:
            PolicyConfigurationError: if not even the fallback role is configured
        """
        entry = self.store.get_role(role)
        if entry is not None:
            return entry

        logger.debug("Unknown role %r, degrading to %r", role, DEFAULT_ROLE)
        entry = self.store.get_role(DEFAULT_ROLE)
        if entry is None:
            raise PolicyConfigurationError(f"Fallback role {DEFAULT_ROLE!r} is not configured")
        return entry

    def get_role_hierarchy(self, role: str) -> RoleHierarchyEntry:
        """Hierarchy entry for a role; unknown roles yield the ``worker`` entry."""
        return self.resolve_role_or_default(role)

    def check_rbac(self, user_context: UserContext, action: str, resource: str) -> PermissionResult:
        """
        Check whether the user's role, or a role it directly inherits, grants the action.

        Args:
            user_context: Resolved user context
            action: Requested action token (e.g. 'read', 'delete')
            resource: Resource type (not used by role tokens)

        Returns:
            PermissionResult for the RBAC stage
        """
        try:
            if '*' in user_context.permissions or action in user_context.permissions:
                return PermissionResult.permit('Direct permission', CHECK)

            for inherited_role in user_context.inherits:
                inherited = self.resolve_role_or_default(inherited_role)
                if inherited.grants(action):
                    return PermissionResult.permit(f"Inherited from {inherited_role}", CHECK)

            return PermissionResult.deny('No RBAC permission', CHECK)
        except Exception:
            logger.exception("RBAC permission check failed for %s", user_context.user_id)
            return PermissionResult.deny('RBAC check error', CHECK)

    def get_effective_permissions(self, user_context: UserContext) -> List[str]:
        """
        Own tokens plus the tokens of each directly inherited role.

        Order of first appearance is preserved; duplicates are removed.
        """
        permissions = list(user_context.permissions)
        for inherited_role in user_context.inherits:
            permissions.extend(self.resolve_role_or_default(inherited_role).permissions)
        return list(dict.fromkeys(permissions))
