"""
Entity Models for Angkor Compliance Access Control
==================================================

Persistent documents consumed by the permission evaluator:

Identity:
- Users: platform accounts with a role, a tenant and assigned factories
- User Attributes: clearance, department, location, certifications...

Policy configuration (administrative surface):
- Role Hierarchy: role level, inherited roles, permission tokens, scope
- Attribute Policies: confidentiality, data sensitivity, time-based rules
- Field Permissions: per role/resource field -> allowed actions overrides
- Permission Policies: administrative policy documents

Records and audit:
- Compliance Records: ownership and placement of audits, CAPs, cases...
- Audit Logs: every access decision made by the evaluator

List and mapping values are stored as JSON text; the core layer parses
them into typed structures at load time.
"""

import json
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean,
    ForeignKey, Text, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
import enum

from .database import Base


class AccessDecision(enum.Enum):
    """Possible outcomes of an access control decision."""
    PERMIT = "PERMIT"
    DENY = "DENY"


# ============================================================================
# Identity Models
# ============================================================================

class User(Base):
    """
    Platform account.

    Roles are stored by name (``super-admin``, ``factory-admin``,
    ``hr-staff``, ``grievance-committee``, ``auditor``, ``worker``); the
    role hierarchy table gives them meaning.
    """
    __tablename__ = 'users'

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True)
    full_name = Column(String(255))
    role = Column(String(100), nullable=False, default='worker')
    tenant_id = Column(String(64), index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    attributes = relationship("UserAttribute", back_populates="user", cascade="all, delete-orphan")
    factory_assignments = relationship(
        "FactoryAssignment", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User(id='{self.id}', role='{self.role}', tenant='{self.tenant_id}')>"


class FactoryAssignment(Base):
    """Factories a user may act on when their scope is assigned-factories."""
    __tablename__ = 'factory_assignments'
    __table_args__ = (UniqueConstraint('user_id', 'factory_id'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False)
    factory_id = Column(String(64), nullable=False)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="factory_assignments")

    def __repr__(self):
        return f"<FactoryAssignment(user_id='{self.user_id}', factory_id='{self.factory_id}')>"


class UserAttribute(Base):
    """
    User attributes for ABAC policy evaluation.

    Common attributes:
    - clearance: standard, elevated...
    - department: HR, compliance, production...
    - location: factory or office the user works from
    - certifications / training: lists of completed programmes
    """
    __tablename__ = 'user_attributes'
    __table_args__ = (UniqueConstraint('user_id', 'attribute_name'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False)
    attribute_name = Column(String(100), nullable=False)
    attribute_value = Column(Text, nullable=False)  # JSON encoded
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="attributes")

    @property
    def value(self):
        return json.loads(self.attribute_value)

    def __repr__(self):
        return f"<UserAttribute(user_id='{self.user_id}', {self.attribute_name}={self.attribute_value})>"


# ============================================================================
# Policy Configuration
# ============================================================================

class RoleHierarchyRecord(Base):
    """
    Stored role hierarchy entry.

    Lower level numbers are more privileged. ``inherits`` lists the roles
    whose permission tokens this role also receives (one level deep).
    """
    __tablename__ = 'role_hierarchy'

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(String(100), unique=True, nullable=False, index=True)
    level = Column(Integer, nullable=False)
    inherits = Column(Text, nullable=False, default='[]')  # JSON list
    permissions = Column(Text, nullable=False, default='[]')  # JSON list
    scope = Column(String(50), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_document(self):
        return {
            'role': self.role,
            'level': self.level,
            'inherits': json.loads(self.inherits),
            'permissions': json.loads(self.permissions),
            'scope': self.scope,
        }

    def __repr__(self):
        return f"<RoleHierarchyRecord(role='{self.role}', level={self.level})>"


class AttributePolicyRecord(Base):
    """Stored attribute policy document (confidentiality, data-sensitivity, time-based)."""
    __tablename__ = 'attribute_policies'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    document = Column(Text, nullable=False)  # JSON policy document
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_document(self):
        return json.loads(self.document)

    def __repr__(self):
        return f"<AttributePolicyRecord(name='{self.name}')>"


class FieldPermissionRecord(Base):
    """Field permission override for one role on one resource type."""
    __tablename__ = 'field_permissions'
    __table_args__ = (UniqueConstraint('role', 'resource_type'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(String(100), nullable=False)
    resource_type = Column(String(100), nullable=False)
    document = Column(Text, nullable=False)  # JSON {field: [actions]}
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<FieldPermissionRecord(role='{self.role}', resource='{self.resource_type}')>"


class PermissionPolicy(Base):
    """Administrative permission policy document (rbac, abac, field or record)."""
    __tablename__ = 'permission_policies'

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    policy_type = Column(String(20), nullable=False)
    rules = Column(Text, nullable=False)  # JSON
    scope = Column(String(100), nullable=False)
    status = Column(String(20), default='active')
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<PermissionPolicy(id='{self.id}', type='{self.policy_type}')>"


# ============================================================================
# Records
# ============================================================================

class ComplianceRecord(Base):
    """
    Ownership and placement of a protected record.

    One row per audit, CAP, grievance case, document... identified by its
    resource type and record id.
    """
    __tablename__ = 'compliance_records'
    __table_args__ = (UniqueConstraint('resource_type', 'record_id'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    resource_type = Column(String(100), nullable=False)
    record_id = Column(String(64), nullable=False)
    created_by = Column(String(64))
    owner_id = Column(String(64))
    factory_id = Column(String(64))
    tenant_id = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<ComplianceRecord({self.resource_type}/{self.record_id})>"


# ============================================================================
# Audit Logging
# ============================================================================

class AuditLog(Base):
    """
    Audit log for all access decisions.

    ``failed_check`` names the evaluation stage that denied the request
    (rbac, abac, field, record or context); it is empty for permits.
    """
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)

    # Who
    user_id = Column(String(64), index=True)
    role = Column(String(100))

    # What
    action = Column(String(100), nullable=False)
    resource_type = Column(String(100))
    record_id = Column(String(64))

    # Decision
    decision = Column(SQLEnum(AccessDecision), nullable=False)
    decision_reason = Column(Text)
    failed_check = Column(String(20))

    # Additional metadata
    request_details = Column(Text)  # JSON with the access context

    def __repr__(self):
        return f"<AuditLog(id={self.id}, user='{self.user_id}', action='{self.action}', decision={self.decision})>"
