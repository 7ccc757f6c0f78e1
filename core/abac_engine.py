"""
Attribute-Based Access Control (ABAC) Engine
============================================

Second evaluation stage. Four attribute checks run in a fixed order and
the first denial wins:

1. Confidentiality: the level named by the request (default ``internal``)
   lists which roles may read and write data at that level.
2. Data sensitivity: same shape, keyed by the sensitivity level
   (default ``medium``).
3. Time-based: outside the business-hours window (Asia/Phnom_Penh by
   default) restricted actions such as ``delete`` and ``admin`` are denied.
4. Location: a request naming a location other than the user's own is
   denied unless the role may override location restrictions.

Only ``read`` and ``write`` are governed by the level policies; other
actions pass through them. Levels that the policy does not declare are
denied.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .policies import (
    CONFIDENTIALITY_POLICY, SENSITIVITY_POLICY, TIME_POLICY,
    AccessContext, LevelPolicy, PermissionResult, TimeWindowPolicy, UserContext
)
from .policy_store import PolicyStore

logger = logging.getLogger(__name__)

CHECK = 'abac'

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ABACEngine:
    """
    ABAC Policy Decision Point over the policy store's attribute policies.

    Args:
        store: Policy store holding the attribute policies
        clock: Callable returning the current time as an aware datetime
    """

    DEFAULT_CONFIDENTIALITY = 'internal'
    DEFAULT_SENSITIVITY = 'medium'

    # Actions each level rule governs
    LEVEL_OPERATIONS = ('read', 'write')

    # Roles allowed to act on resources outside their own location
    LOCATION_OVERRIDE_ROLES = frozenset({'super-admin', 'factory-admin'})

    def __init__(self, store: PolicyStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or utc_now

    def check_abac(
        self,
        user_context: UserContext,
        action: str,
        resource: str,
        context: AccessContext
    ) -> PermissionResult:
        """
        Run the confidentiality, sensitivity, time and location checks in order.

        Returns:
            The first denial, or a permit when all four pass
        """
        try:
            checks = (
                self.check_confidentiality,
                self.check_data_sensitivity,
                self.check_time_based,
                self.check_location,
            )
            for check in checks:
                result = check(user_context, action, resource, context)
                if not result.allowed:
                    return result
            return PermissionResult.permit('ABAC policies passed', CHECK)
        except Exception:
            logger.exception("ABAC policy check failed for %s", user_context.user_id)
            return PermissionResult.deny('ABAC check error', CHECK)

    def check_confidentiality(self, user_context, action, resource, context) -> PermissionResult:
        try:
            level = context.confidentiality or self.DEFAULT_CONFIDENTIALITY
            return self._check_level(
                CONFIDENTIALITY_POLICY, level, user_context.role, action,
                denial=f"Insufficient clearance for {level} data",
                passed='Confidentiality policy passed'
            )
        except Exception:
            logger.exception("Confidentiality policy check failed")
            return PermissionResult.deny('Confidentiality check error', CHECK)

    def check_data_sensitivity(self, user_context, action, resource, context) -> PermissionResult:
        try:
            level = context.sensitivity or self.DEFAULT_SENSITIVITY
            return self._check_level(
                SENSITIVITY_POLICY, level, user_context.role, action,
                denial=f"Insufficient clearance for {level} sensitivity data",
                passed='Data sensitivity policy passed'
            )
        except Exception:
            logger.exception("Data sensitivity policy check failed")
            return PermissionResult.deny('Sensitivity check error', CHECK)

    def _check_level(
        self,
        policy_name: str,
        level: str,
        role: str,
        action: str,
        denial: str,
        passed: str
    ) -> PermissionResult:
        policy = self.store.attribute_policy(policy_name)
        if not isinstance(policy, LevelPolicy):
            return PermissionResult.deny(f"No {policy_name} policy configured", CHECK)

        rule = policy.rule_for(level)
        if rule is None:
            return PermissionResult.deny(f"Unknown {policy_name} level '{level}'", CHECK)

        if action in self.LEVEL_OPERATIONS and not rule.admits(action, role):
            return PermissionResult.deny(denial, CHECK)

        return PermissionResult.permit(passed, CHECK)

    def check_time_based(self, user_context, action, resource, context) -> PermissionResult:
        try:
            policy = self.store.attribute_policy(TIME_POLICY)
            if not isinstance(policy, TimeWindowPolicy):
                return PermissionResult.deny('No time-based policy configured', CHECK)

            if action in policy.restricted_actions and not self.is_business_hours(policy):
                return PermissionResult.deny('Action restricted outside business hours', CHECK)

            return PermissionResult.permit('Time-based policy passed', CHECK)
        except Exception:
            logger.exception("Time-based policy check failed")
            return PermissionResult.deny('Time check error', CHECK)

    def is_business_hours(self, policy: Optional[TimeWindowPolicy] = None) -> bool:
        """True when the clock falls inside the business-hours window."""
        policy = policy or self.store.attribute_policy(TIME_POLICY)
        window = policy.business_hours
        local = self.clock().astimezone(window.zone)
        return window.contains(local.time().replace(microsecond=0, tzinfo=None))

    def check_location(self, user_context, action, resource, context) -> PermissionResult:
        try:
            user_location = user_context.attributes.get('location')
            resource_location = context.location

            if resource_location and user_location != resource_location:
                if user_context.role in self.LOCATION_OVERRIDE_ROLES:
                    return PermissionResult.permit('Location override by admin', CHECK)
                return PermissionResult.deny('Location access denied', CHECK)

            return PermissionResult.permit('Location policy passed', CHECK)
        except Exception:
            logger.exception("Location policy check failed")
            return PermissionResult.deny('Location check error', CHECK)
