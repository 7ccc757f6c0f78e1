# Angkor Compliance Access Control - Core Modules
# Layered RBAC / ABAC / field / record permission evaluation

from .rbac_engine import RBACEngine
from .abac_engine import ABACEngine
from .field_engine import FieldLevelEngine
from .record_engine import RecordLevelEngine
from .audit import AuditLogger
from .cache import EvaluationCache
from .evaluator import PermissionEvaluator
from .exceptions import (
    AccessControlError,
    PolicyConfigurationError,
    LookupFailure,
    PolicyViolation
)
from .policies import AccessContext, PermissionQuery, PermissionResult, UserContext
from .policy_store import PolicyStore
from .settings import Settings
from .user_repository import UserRepository

__all__ = [
    'RBACEngine',
    'ABACEngine',
    'FieldLevelEngine',
    'RecordLevelEngine',
    'AuditLogger',
    'EvaluationCache',
    'PermissionEvaluator',
    'AccessControlError',
    'PolicyConfigurationError',
    'LookupFailure',
    'PolicyViolation',
    'AccessContext',
    'PermissionQuery',
    'PermissionResult',
    'UserContext',
    'PolicyStore',
    'Settings',
    'UserRepository'
]
