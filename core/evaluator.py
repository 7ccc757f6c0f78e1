"""
Permission Evaluator
====================

Single entry point for access decisions on the compliance platform.

A request passes through four stages in order, and the first denial is
the answer:

    RBAC    -> role tokens, one level of role inheritance
    ABAC    -> confidentiality, data sensitivity, business hours, location
    Field   -> per-role field tables for the requested fields
    Record  -> ownership, assigned factory, tenant

``allowed`` is True only when every stage allows. Nothing raised inside a
stage escapes: lookup problems and unexpected errors become denials.

The evaluator is an explicit service object: callers construct it with a
policy store and a user repository (``PermissionEvaluator.from_settings``
wires the defaults) and pass it to whatever needs to make decisions. It
holds no per-request state apart from the optional result cache, so one
instance can serve concurrent requests.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Union

from sqlalchemy.orm import sessionmaker

from .abac_engine import ABACEngine, Clock
from .audit import AuditLogger
from .cache import EvaluationCache
from .exceptions import LookupFailure, PolicyViolation
from .field_engine import FieldLevelEngine
from .policies import (
    TIME_POLICY, AccessContext, PermissionQuery, PermissionResult,
    TimeWindowPolicy, UserContext
)
from .policy_store import PolicyStore
from .rbac_engine import RBACEngine
from .record_engine import RecordLevelEngine
from .settings import Settings
from .user_repository import UserRepository

logger = logging.getLogger(__name__)

ContextLike = Union[AccessContext, Mapping[str, Any], None]


class PermissionEvaluator:
    """
    Layered RBAC + ABAC + field + record permission evaluator.

    Args:
        store: Policy store (role hierarchy, attribute policies, field tables)
        users: User repository (users, attributes, record ownership)
        audit: Optional audit logger; every decision is recorded when set
        cache: Optional evaluation cache
        clock: Callable returning the current aware datetime (time-based checks)
        settings: Runtime settings
    """

    def __init__(
        self,
        store: PolicyStore,
        users: UserRepository,
        audit: Optional[AuditLogger] = None,
        cache: Optional[EvaluationCache] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or Settings()
        self.store = store
        self.users = users
        self.audit = audit
        self.cache = cache
        self.rbac = RBACEngine(store)
        self.abac = ABACEngine(store, clock)
        self.fields = FieldLevelEngine(store, self.settings.unlisted_field_policy)
        self.records = RecordLevelEngine(users)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[Clock] = None
    ) -> 'PermissionEvaluator':
        """Build an evaluator with the database-backed stores the settings call for."""
        settings = settings or Settings.from_env()
        cache = EvaluationCache(settings.cache_ttl_seconds) if settings.cache_enabled else None
        audit = AuditLogger(session_factory) if settings.audit_enabled else None
        return cls(
            store=PolicyStore(session_factory),
            users=UserRepository(session_factory),
            audit=audit,
            cache=cache,
            clock=clock,
            settings=settings
        )

    # ------------------------------------------------------------------
    # Subject resolution
    # ------------------------------------------------------------------

    def authenticate(self, user_id: str) -> UserContext:
        """
        Resolve a user id into the context the stages evaluate against.

        Raises:
            LookupFailure: if the user does not exist, is inactive, or
                cannot be loaded
        """
        user = self.users.get_user(user_id)
        if user is None:
            raise LookupFailure('User not found')
        if not user.is_active:
            raise LookupFailure('User account is inactive')

        entry = self.rbac.resolve_role_or_default(user.role)
        attributes = self.users.get_user_attributes(user_id)

        return UserContext(
            user_id=user.user_id,
            role=user.role,
            role_level=entry.level,
            inherits=entry.inherits,
            permissions=entry.permissions,
            scope=entry.scope,
            attributes=attributes,
            tenant_id=user.tenant_id,
            assigned_factories=list(user.assigned_factories)
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def evaluate_context(
        self,
        user_context: UserContext,
        action: str,
        resource: str,
        context: ContextLike = None
    ) -> PermissionResult:
        """
        Run the four stages for an already resolved user.

        Pure with respect to the policy tables: no caching, no audit.
        """
        if not isinstance(context, AccessContext):
            context = AccessContext.from_mapping(context)

        result = self.rbac.check_rbac(user_context, action, resource)
        if not result.allowed:
            return result

        for check in (self.abac.check_abac, self.fields.check_field_level, self.records.check_record_level):
            result = check(user_context, action, resource, context)
            if not result.allowed:
                return result

        return PermissionResult.permit('All permission checks passed')

    def evaluate(self, query: PermissionQuery) -> PermissionResult:
        """
        Evaluate a permission query, consulting and filling the cache.

        Never raises. Only decisions made by the four stages are cached;
        lookup and evaluation failures are retried on the next call.
        """
        cacheable = self.cache is not None and not self._is_time_restricted(query.action)
        if cacheable:
            cached = self.cache.get(query)
            if cached is not None:
                return cached

        role = None
        try:
            user_context = self.authenticate(query.user_id)
            role = user_context.role
            result = self.evaluate_context(user_context, query.action, query.resource, query.context)
        except LookupFailure as e:
            logger.warning("User context lookup failed for %s: %s", query.user_id, e)
            reason = str(e) if e.__cause__ is None else 'User context error'
            result = PermissionResult.deny(reason, 'context')
            cacheable = False
        except Exception:
            logger.exception("Permission evaluation failed for %s", query.user_id)
            result = PermissionResult.deny('Evaluation error', 'context')
            cacheable = False

        if not result.allowed:
            logger.info(
                "Denied %s %s on %s: %s",
                query.user_id, query.action, query.resource, result.reason
            )

        if cacheable:
            self.cache.set(query, result)
        self._record(query, result, role)
        return result

    def _is_time_restricted(self, action: str) -> bool:
        """Actions whose outcome depends on the clock are never served from the cache."""
        policy = self.store.attribute_policy(TIME_POLICY)
        if not isinstance(policy, TimeWindowPolicy):
            return False
        return action in policy.restricted_actions

    def _record(self, query: PermissionQuery, result: PermissionResult, role: Optional[str]):
        if self.audit is None:
            return
        try:
            self.audit.log_access_decision(query, result, role=role)
        except Exception:
            # The decision stands even if the audit trail is unavailable
            logger.exception("Failed to record access decision for %s", query.user_id)

    def check_access(
        self,
        user_id: str,
        action: str,
        resource: str,
        context: ContextLike = None
    ) -> PermissionResult:
        """
        Decide whether a user may perform an action on a resource type.

        Args:
            user_id: Requesting user
            action: Action token (read, write, delete, admin...)
            resource: Resource type (user, factory, document, case, cap...)
            context: AccessContext or mapping with confidentiality,
                sensitivity, fields, record/factory/tenant ids, location

        Returns:
            PermissionResult with the reason of the deciding stage
        """
        if not isinstance(context, AccessContext):
            try:
                context = AccessContext.from_mapping(context)
            except (TypeError, ValueError) as e:
                logger.warning("Rejected malformed context from %s: %s", user_id, e)
                result = PermissionResult.deny('Invalid request context', 'context')
                self._record(PermissionQuery(user_id, action, resource), result, None)
                return result
        return self.evaluate(PermissionQuery(user_id, action, resource, context))

    def has_permission(
        self,
        user_id: str,
        action: str,
        resource: str,
        context: ContextLike = None
    ) -> bool:
        return self.check_access(user_id, action, resource, context).allowed

    def require(
        self,
        user_id: str,
        action: str,
        resource: str,
        context: ContextLike = None
    ) -> PermissionResult:
        """
        Like check_access, but raises on denial.

        Raises:
            PolicyViolation: carrying the denial reason (status_code 403)
        """
        result = self.check_access(user_id, action, resource, context)
        if not result.allowed:
            raise PolicyViolation(result.reason, result.check)
        return result

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_effective_permissions(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Summary of a user's role, merged permission tokens and attributes.

        Returns None when the user cannot be resolved.
        """
        try:
            user_context = self.authenticate(user_id)
        except LookupFailure as e:
            logger.warning("Cannot resolve effective permissions for %s: %s", user_id, e)
            return None

        return {
            'user_id': user_context.user_id,
            'role': user_context.role,
            'level': user_context.role_level,
            'inherits': list(user_context.inherits),
            'permissions': self.rbac.get_effective_permissions(user_context),
            'scope': user_context.scope,
            'attributes': user_context.attributes,
            'tenant_id': user_context.tenant_id,
            'assigned_factories': user_context.assigned_factories
        }

    def clear_cache(self, user_id: Optional[str] = None):
        """
        Clear cached decisions.

        Args:
            user_id: Specific user to clear, or None to clear all
        """
        if self.cache is None:
            return
        if user_id:
            self.cache.invalidate_user(user_id)
        else:
            self.cache.clear()
