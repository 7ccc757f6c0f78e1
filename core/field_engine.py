"""
Field-Level Permission Engine
=============================

Third evaluation stage. Requests that name specific fields are checked
against the role's field table for the resource type: each field entry
lists the actions allowed on that field. A ``*`` entry applies to fields
without an entry of their own, which is stricter than treating every
unlisted field as unrestricted: with ``'*': ['read', 'write']`` a
``delete`` naming any field of that resource is denied.

Fields with neither an entry nor a ``*`` entry are governed by the
unlisted-field policy: ``allow`` (the platform default) or ``deny``.
"""

import logging

from .policies import WILDCARD, AccessContext, PermissionResult, UserContext
from .policy_store import PolicyStore
from .settings import UNLISTED_FIELD_POLICIES

logger = logging.getLogger(__name__)

CHECK = 'field'


class FieldLevelEngine:

    def __init__(self, store: PolicyStore, unlisted_field_policy: str = 'allow'):
        if unlisted_field_policy not in UNLISTED_FIELD_POLICIES:
            raise ValueError(f"Unknown unlisted field policy: {unlisted_field_policy!r}")
        self.store = store
        self.unlisted_field_policy = unlisted_field_policy

    def check_field_level(
        self,
        user_context: UserContext,
        action: str,
        resource: str,
        context: AccessContext
    ) -> PermissionResult:
        try:
            if not context.fields:
                return PermissionResult.permit('No field restrictions', CHECK)

            table = self.store.field_permissions(user_context.role, resource)

            for field_name in context.fields:
                allowed_actions = table.get(field_name)
                if allowed_actions is None:
                    allowed_actions = table.get(WILDCARD)
                if allowed_actions is None:
                    if self.unlisted_field_policy == 'deny':
                        return PermissionResult.deny(
                            f"Field '{field_name}' has no permission entry", CHECK
                        )
                    continue
                if action not in allowed_actions:
                    return PermissionResult.deny(
                        f"Field '{field_name}' access denied for action '{action}'", CHECK
                    )

            return PermissionResult.permit('Field-level permissions passed', CHECK)
        except Exception:
            logger.exception("Field-level permission check failed for %s", user_context.user_id)
            return PermissionResult.deny('Field check error', CHECK)
