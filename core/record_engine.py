"""
Record-Level Permission Engine
==============================

Fourth evaluation stage. Requests that target a specific record are
allowed when the user owns or created the record, when the record's
factory is assigned to the user, or when the record belongs to the
user's tenant.
"""

import logging

from .policies import AccessContext, PermissionResult, UserContext
from .user_repository import UserRepository

logger = logging.getLogger(__name__)

CHECK = 'record'


class RecordLevelEngine:

    def __init__(self, users: UserRepository):
        self.users = users

    def check_record_level(
        self,
        user_context: UserContext,
        action: str,
        resource: str,
        context: AccessContext
    ) -> PermissionResult:
        try:
            record_id = context.record_id
            if not record_id:
                return PermissionResult.permit('No record restrictions', CHECK)

            if self.users.is_record_owner(user_context.user_id, resource, record_id):
                return PermissionResult.permit('Record owner', CHECK)

            if context.factory_id and context.factory_id in user_context.assigned_factories:
                return PermissionResult.permit('Factory assigned', CHECK)

            # A missing tenant on either side never matches
            if context.tenant_id is not None and context.tenant_id == user_context.tenant_id:
                return PermissionResult.permit('Tenant access', CHECK)

            return PermissionResult.deny('Record access denied', CHECK)
        except Exception:
            logger.exception("Record-level permission check failed for %s", user_context.user_id)
            return PermissionResult.deny('Record check error', CHECK)
