"""
User Repository
===============

Policy Information Point for subject attributes. Resolves stored users,
their attributes and factory assignments into plain snapshots, and answers
record ownership questions for the record-level check.

Database errors are raised as LookupFailure; the evaluator turns them into
denials.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models.database import get_session
from models.entities import User, UserAttribute, FactoryAssignment, ComplianceRecord
from .exceptions import LookupFailure
from .policies import DEFAULT_USER_ATTRIBUTES

logger = logging.getLogger(__name__)


@dataclass
class UserRecord:
    user_id: str
    role: str
    tenant_id: Optional[str] = None
    assigned_factories: List[str] = field(default_factory=list)
    is_active: bool = True
    email: Optional[str] = None
    full_name: Optional[str] = None


class UserRepository:
    """Reads and administers users, attributes and compliance records."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def _session(self):
        return get_session(self.session_factory)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        try:
            with self._session() as session:
                user = session.get(User, user_id)
                if user is None:
                    return None
                return self._to_record(user)
        except SQLAlchemyError as e:
            raise LookupFailure(f"Failed to load user {user_id!r}") from e

    def list_users(self) -> List[UserRecord]:
        with self._session() as session:
            return [self._to_record(u) for u in session.query(User).order_by(User.id).all()]

    def get_user_attributes(self, user_id: str) -> Dict[str, Any]:
        """
        Attribute map for a user.

        Users with no stored attributes get the platform defaults.
        """
        try:
            with self._session() as session:
                rows = session.query(UserAttribute).filter(
                    UserAttribute.user_id == user_id
                ).all()
                attributes = {row.attribute_name: row.value for row in rows}
        except (SQLAlchemyError, ValueError) as e:
            raise LookupFailure(f"Failed to load attributes for {user_id!r}") from e

        if not attributes:
            return dict(DEFAULT_USER_ATTRIBUTES)
        return attributes

    def is_record_owner(self, user_id: str, resource: str, record_id: str) -> bool:
        """True when the user created or owns the record."""
        try:
            with self._session() as session:
                record = session.query(ComplianceRecord).filter(
                    ComplianceRecord.resource_type == resource,
                    ComplianceRecord.record_id == record_id
                ).first()
                if record is None:
                    return False
                return user_id in (record.created_by, record.owner_id)
        except SQLAlchemyError as e:
            raise LookupFailure(f"Failed to load record {resource}/{record_id}") from e

    def list_records(self, resource: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._session() as session:
            query = session.query(ComplianceRecord)
            if resource:
                query = query.filter(ComplianceRecord.resource_type == resource)
            return [
                {
                    'resource_type': r.resource_type,
                    'record_id': r.record_id,
                    'created_by': r.created_by,
                    'owner_id': r.owner_id,
                    'factory_id': r.factory_id,
                    'tenant_id': r.tenant_id,
                }
                for r in query.order_by(ComplianceRecord.resource_type, ComplianceRecord.record_id)
            ]

    @staticmethod
    def _to_record(user: User) -> UserRecord:
        return UserRecord(
            user_id=user.id,
            role=user.role,
            tenant_id=user.tenant_id,
            assigned_factories=sorted(a.factory_id for a in user.factory_assignments),
            is_active=bool(user.is_active),
            email=user.email,
            full_name=user.full_name,
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def create_user(
        self,
        user_id: str,
        role: str,
        tenant_id: Optional[str] = None,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        assigned_factories: Optional[List[str]] = None,
        is_active: bool = True
    ) -> UserRecord:
        with self._session() as session:
            user = User(
                id=user_id,
                role=role,
                tenant_id=tenant_id,
                email=email,
                full_name=full_name,
                is_active=is_active
            )
            for factory_id in assigned_factories or []:
                user.factory_assignments.append(FactoryAssignment(factory_id=factory_id))
            session.add(user)
            session.flush()
            return self._to_record(user)

    def set_role(self, user_id: str, role: str):
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise LookupFailure(f"User {user_id!r} not found")
            user.role = role

    def set_attribute(self, user_id: str, name: str, value: Any):
        """Set or update a user attribute (stored JSON encoded)."""
        with self._session() as session:
            existing = session.query(UserAttribute).filter(
                UserAttribute.user_id == user_id,
                UserAttribute.attribute_name == name
            ).first()
            if existing:
                existing.attribute_value = json.dumps(value)
            else:
                session.add(UserAttribute(
                    user_id=user_id,
                    attribute_name=name,
                    attribute_value=json.dumps(value)
                ))

    def assign_factory(self, user_id: str, factory_id: str) -> bool:
        """Assign a factory to a user; False if already assigned."""
        with self._session() as session:
            existing = session.query(FactoryAssignment).filter(
                FactoryAssignment.user_id == user_id,
                FactoryAssignment.factory_id == factory_id
            ).first()
            if existing:
                return False
            session.add(FactoryAssignment(user_id=user_id, factory_id=factory_id))
            return True

    def register_record(
        self,
        resource: str,
        record_id: str,
        created_by: Optional[str] = None,
        owner_id: Optional[str] = None,
        factory_id: Optional[str] = None,
        tenant_id: Optional[str] = None
    ):
        with self._session() as session:
            session.add(ComplianceRecord(
                resource_type=resource,
                record_id=record_id,
                created_by=created_by,
                owner_id=owner_id,
                factory_id=factory_id,
                tenant_id=tenant_id
            ))
