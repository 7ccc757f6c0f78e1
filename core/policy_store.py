"""
Policy Store
============

Policy Administration and Information Point for the evaluator.

Holds the role hierarchy and attribute policies as an immutable snapshot
loaded from the database. Reloads build a new snapshot and swap it in
under a lock, so concurrent evaluations always read a consistent set of
tables. Field permissions are read through on every call because they are
keyed per role and resource.

Whenever a stored document is absent, unreadable or malformed, the built-in
defaults from ``core.policies`` are used instead.
"""

import json
import logging
import re
import threading
import time
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models.database import get_session
from models.entities import (
    RoleHierarchyRecord, AttributePolicyRecord,
    FieldPermissionRecord, PermissionPolicy
)
from .exceptions import PolicyConfigurationError
from .policies import (
    DEFAULT_ROLE, DEFAULT_ROLE_HIERARCHY, DEFAULT_ATTRIBUTE_POLICIES,
    AttributePolicy, RoleHierarchyEntry,
    default_attribute_policies, default_field_permissions, default_role_hierarchy,
    parse_attribute_policy, parse_field_table
)

logger = logging.getLogger(__name__)

POLICY_TYPES = ('rbac', 'abac', 'field', 'record')


class PolicyStore:
    """
    Loads, caches and administers access control policy documents.

    Args:
        session_factory: Optional sessionmaker; defaults to the application's
            session factory.
        autoload: Load the snapshot immediately (default True).
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None, autoload: bool = True):
        self.session_factory = session_factory
        self._lock = threading.Lock()
        self._role_hierarchy: Mapping[str, RoleHierarchyEntry] = MappingProxyType(
            default_role_hierarchy()
        )
        self._attribute_policies: Mapping[str, AttributePolicy] = MappingProxyType(
            default_attribute_policies()
        )
        if autoload:
            self.reload()

    def _session(self):
        return get_session(self.session_factory)

    # ------------------------------------------------------------------
    # Snapshot loading
    # ------------------------------------------------------------------

    def reload(self):
        """Rebuild the snapshot from the database and swap it in."""
        roles = self._load_role_hierarchy()
        policies = self._load_attribute_policies()
        with self._lock:
            self._role_hierarchy = MappingProxyType(roles)
            self._attribute_policies = MappingProxyType(policies)
        logger.debug(
            "Policy snapshot loaded: %d roles, %d attribute policies",
            len(roles), len(policies)
        )

    def _load_role_hierarchy(self) -> Dict[str, RoleHierarchyEntry]:
        try:
            with self._session() as session:
                documents = [r.to_document() for r in session.query(RoleHierarchyRecord).all()]
        except (SQLAlchemyError, ValueError):
            logger.warning("Failed to load role hierarchy, using defaults", exc_info=True)
            return default_role_hierarchy()

        if not documents:
            logger.info("No stored role hierarchy, using defaults")
            return default_role_hierarchy()

        entries = {}
        for document in documents:
            try:
                entry = RoleHierarchyEntry.from_document(document)
            except PolicyConfigurationError as e:
                logger.warning("Skipping role %r: %s %s", document.get('role'), e, e.errors)
                continue
            entries[entry.role] = entry

        # Unknown roles resolve to the floor role, so it must always exist
        if DEFAULT_ROLE not in entries:
            entries[DEFAULT_ROLE] = RoleHierarchyEntry.from_document(
                DEFAULT_ROLE_HIERARCHY[DEFAULT_ROLE]
            )
        return entries

    def _load_attribute_policies(self) -> Dict[str, AttributePolicy]:
        policies = default_attribute_policies()
        try:
            with self._session() as session:
                documents = [r.to_document() for r in session.query(AttributePolicyRecord).all()]
        except (SQLAlchemyError, ValueError):
            logger.warning("Failed to load attribute policies, using defaults", exc_info=True)
            return policies

        for document in documents:
            try:
                policy = parse_attribute_policy(document)
            except PolicyConfigurationError as e:
                logger.warning("Skipping attribute policy %r: %s %s", document.get('name'), e, e.errors)
                continue
            policies[policy.name] = policy
        return policies

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def role_hierarchy(self) -> Mapping[str, RoleHierarchyEntry]:
        return self._role_hierarchy

    @property
    def attribute_policies(self) -> Mapping[str, AttributePolicy]:
        return self._attribute_policies

    def get_role(self, role: Optional[str]) -> Optional[RoleHierarchyEntry]:
        if role is None:
            return None
        return self._role_hierarchy.get(role)

    def attribute_policy(self, name: str) -> Optional[AttributePolicy]:
        return self._attribute_policies.get(name)

    def field_permissions(self, role: str, resource: str) -> Dict[str, Tuple[str, ...]]:
        """
        Field -> allowed actions table for a role on a resource type.

        Stored overrides win; otherwise the built-in default table (which may
        be empty).
        """
        try:
            with self._session() as session:
                record = session.query(FieldPermissionRecord).filter(
                    FieldPermissionRecord.role == role,
                    FieldPermissionRecord.resource_type == resource
                ).first()
                document = json.loads(record.document) if record else None
        except (SQLAlchemyError, ValueError):
            logger.warning(
                "Failed to load field permissions for %s/%s, using defaults",
                role, resource, exc_info=True
            )
            return default_field_permissions(role, resource)

        if document is None:
            return default_field_permissions(role, resource)
        try:
            return parse_field_table(document)
        except PolicyConfigurationError as e:
            logger.warning("Invalid field permissions for %s/%s: %s", role, resource, e)
            return default_field_permissions(role, resource)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def save_role_hierarchy(self, entry: RoleHierarchyEntry, reload: bool = True):
        """Create or replace a stored role hierarchy entry."""
        with self._session() as session:
            record = session.query(RoleHierarchyRecord).filter(
                RoleHierarchyRecord.role == entry.role
            ).first()
            if record is None:
                record = RoleHierarchyRecord(role=entry.role)
                session.add(record)
            record.level = entry.level
            record.inherits = json.dumps(list(entry.inherits))
            record.permissions = json.dumps(list(entry.permissions))
            record.scope = entry.scope
        if reload:
            self.reload()

    def save_attribute_policy(self, document: Mapping[str, Any], reload: bool = True) -> AttributePolicy:
        """Validate and store an attribute policy document."""
        policy = parse_attribute_policy(document)
        with self._session() as session:
            record = session.query(AttributePolicyRecord).filter(
                AttributePolicyRecord.name == policy.name
            ).first()
            if record is None:
                record = AttributePolicyRecord(name=policy.name)
                session.add(record)
            record.document = json.dumps(policy.to_document())
        if reload:
            self.reload()
        return policy

    def save_field_permissions(self, role: str, resource: str, table: Mapping[str, Any]):
        """Validate and store a field permission override."""
        parsed = parse_field_table(table)
        with self._session() as session:
            record = session.query(FieldPermissionRecord).filter(
                FieldPermissionRecord.role == role,
                FieldPermissionRecord.resource_type == resource
            ).first()
            if record is None:
                record = FieldPermissionRecord(role=role, resource_type=resource)
                session.add(record)
            record.document = json.dumps({k: list(v) for k, v in parsed.items()})

    def seed_defaults(self):
        """Store the built-in role hierarchy and attribute policies so they can be edited."""
        for document in DEFAULT_ROLE_HIERARCHY.values():
            self.save_role_hierarchy(RoleHierarchyEntry.from_document(document), reload=False)
        for document in DEFAULT_ATTRIBUTE_POLICIES.values():
            self.save_attribute_policy(document, reload=False)
        self.reload()

    @staticmethod
    def validate_permission_policy(policy: Mapping[str, Any]) -> List[str]:
        """
        Validate an administrative permission policy document.

        Returns:
            List of error messages; empty when the policy is valid
        """
        errors = []

        name = policy.get('name')
        if not name or len(name) < 3:
            errors.append('Policy name must be at least 3 characters')

        if policy.get('type') not in POLICY_TYPES:
            errors.append('Invalid policy type')

        if not policy.get('rules'):
            errors.append('Policy rules are required')

        if not policy.get('scope'):
            errors.append('Policy scope is required')

        return errors

    @staticmethod
    def generate_policy_id(name: str, now: Optional[float] = None) -> str:
        """Policy ids are an 8-char slug of the name plus a base-36 millisecond timestamp."""
        millis = int((time.time() if now is None else now) * 1000)
        digits = '0123456789abcdefghijklmnopqrstuvwxyz'
        stamp = ''
        while True:
            millis, rem = divmod(millis, 36)
            stamp = digits[rem] + stamp
            if millis == 0:
                break
        slug = re.sub(r'[^a-z0-9]', '', name.lower())[:8]
        return f"{slug}-{stamp}"

    def create_permission_policy(
        self,
        name: str,
        policy_type: str,
        rules: Mapping[str, Any],
        scope: str,
        created_by: Optional[str] = None
    ) -> str:
        """
        Store a new administrative permission policy.

        Raises:
            PolicyConfigurationError: if the policy fails validation

        Returns:
            Generated policy id
        """
        errors = self.validate_permission_policy({
            'name': name, 'type': policy_type, 'rules': rules, 'scope': scope
        })
        if errors:
            raise PolicyConfigurationError(f"Invalid permission policy {name!r}", errors)

        policy_id = self.generate_policy_id(name)
        with self._session() as session:
            session.add(PermissionPolicy(
                id=policy_id,
                name=name,
                policy_type=policy_type,
                rules=json.dumps(rules),
                scope=scope,
                status='active',
                created_by=created_by
            ))
        logger.info("Permission policy created: %s", policy_id)
        return policy_id

    def list_permission_policies(self) -> List[Dict[str, Any]]:
        with self._session() as session:
            return [
                {
                    'id': p.id,
                    'name': p.name,
                    'type': p.policy_type,
                    'rules': json.loads(p.rules),
                    'scope': p.scope,
                    'status': p.status,
                    'created_by': p.created_by,
                    'created_at': p.created_at,
                }
                for p in session.query(PermissionPolicy).order_by(PermissionPolicy.created_at).all()
            ]
