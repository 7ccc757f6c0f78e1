# Angkor Compliance Access Control - Database Models
# Users, policy documents, compliance records and the decision audit trail

from .database import Base, engine, get_session, init_db, make_session_factory
from .entities import (
    AccessDecision,
    User,
    FactoryAssignment,
    UserAttribute,
    RoleHierarchyRecord,
    AttributePolicyRecord,
    FieldPermissionRecord,
    PermissionPolicy,
    ComplianceRecord,
    AuditLog
)

__all__ = [
    'Base',
    'engine',
    'get_session',
    'init_db',
    'make_session_factory',
    'AccessDecision',
    'User',
    'FactoryAssignment',
    'UserAttribute',
    'RoleHierarchyRecord',
    'AttributePolicyRecord',
    'FieldPermissionRecord',
    'PermissionPolicy',
    'ComplianceRecord',
    'AuditLog'
]
