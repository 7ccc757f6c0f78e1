"""
Policy Structures and Built-in Defaults
=======================================

Typed forms of the documents the evaluator consumes, plus the request and
result types that flow through the four evaluation stages:

- RoleHierarchyEntry: one row of the role hierarchy
- LevelPolicy / TimeWindowPolicy: the two attribute policy kinds
- AccessContext, UserContext, PermissionQuery, PermissionResult

Stored documents are validated when parsed; anything malformed raises
PolicyConfigurationError so it never reaches an access decision.

The DEFAULT_* tables are the platform's built-in configuration, used
whenever no stored override exists.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import time
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import PolicyConfigurationError

WILDCARD = '*'
DEFAULT_ROLE = 'worker'
BUSINESS_TIMEZONE = 'Asia/Phnom_Penh'

CONFIDENTIALITY_POLICY = 'confidentiality'
SENSITIVITY_POLICY = 'data-sensitivity'
TIME_POLICY = 'time-based'

SCOPES = ('global', 'assigned-factories', 'own-records')


# ============================================================================
# Role Hierarchy
# ============================================================================

@dataclass(frozen=True)
class RoleHierarchyEntry:
    role: str
    level: int
    inherits: Tuple[str, ...] = ()
    permissions: Tuple[str, ...] = ()
    scope: str = 'own-records'

    def grants(self, action: str) -> bool:
        """True when the entry's own tokens cover the action."""
        return WILDCARD in self.permissions or action in self.permissions

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> 'RoleHierarchyEntry':
        errors = []
        role = document.get('role')
        if not isinstance(role, str) or not role:
            errors.append('role must be a non-empty string')
        level = document.get('level')
        if not isinstance(level, int) or isinstance(level, bool) or level < 1:
            errors.append('level must be a positive integer')
        inherits = document.get('inherits', [])
        if not _is_str_list(inherits):
            errors.append('inherits must be a list of role names')
        permissions = document.get('permissions', [])
        if not _is_str_list(permissions):
            errors.append('permissions must be a list of tokens')
        scope = document.get('scope')
        if scope not in SCOPES:
            errors.append(f"scope must be one of {', '.join(SCOPES)}")
        if errors:
            raise PolicyConfigurationError(
                f"Invalid role hierarchy entry for {role!r}", errors
            )
        return cls(
            role=role,
            level=level,
            inherits=tuple(inherits),
            permissions=tuple(permissions),
            scope=scope,
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            'role': self.role,
            'level': self.level,
            'inherits': list(self.inherits),
            'permissions': list(self.permissions),
            'scope': self.scope,
        }


# ============================================================================
# Attribute Policies
# ============================================================================

@dataclass(frozen=True)
class LevelRule:
    read: FrozenSet[str]
    write: FrozenSet[str]

    def admits(self, operation: str, role: str) -> bool:
        members = self.read if operation == 'read' else self.write
        return WILDCARD in members or role in members


@dataclass(frozen=True)
class LevelPolicy:
    """Ordered levels (e.g. public -> restricted), each with read/write role sets."""
    name: str
    levels: Tuple[str, ...]
    rules: Mapping[str, LevelRule]
    kind = 'levels'

    def rule_for(self, level: str) -> Optional[LevelRule]:
        return self.rules.get(level)

    def to_document(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind,
            'levels': list(self.levels),
            'rules': {
                level: {'read': sorted(rule.read), 'write': sorted(rule.write)}
                for level, rule in self.rules.items()
            },
        }


@dataclass(frozen=True)
class TimeWindow:
    start: time
    end: time
    timezone: str = BUSINESS_TIMEZONE

    def contains(self, moment: time) -> bool:
        """Half-open window [start, end); windows may wrap past midnight."""
        if self.start <= self.end:
            return self.start <= moment < self.end
        return moment >= self.start or moment < self.end

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class TimeWindowPolicy:
    name: str
    windows: Mapping[str, TimeWindow]
    restricted_actions: FrozenSet[str] = frozenset({'delete', 'admin'})
    kind = 'time-windows'

    @property
    def business_hours(self) -> Optional[TimeWindow]:
        return self.windows.get('business-hours')

    def to_document(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind,
            'rules': {
                key: {
                    'start': window.start.strftime('%H:%M'),
                    'end': window.end.strftime('%H:%M'),
                    'timezone': window.timezone,
                }
                for key, window in self.windows.items()
            },
            'restricted_actions': sorted(self.restricted_actions),
        }


AttributePolicy = Union[LevelPolicy, TimeWindowPolicy]


def parse_attribute_policy(document: Mapping[str, Any]) -> AttributePolicy:
    """
    Parse a stored attribute policy document into its typed form.

    Documents carrying ``levels`` (or ``kind: levels``) are level policies;
    documents whose rules hold start/end windows (or ``kind: time-windows``)
    are time policies.
    """
    name = document.get('name')
    if not isinstance(name, str) or not name:
        raise PolicyConfigurationError('Attribute policy must have a name')

    rules = document.get('rules')
    if not isinstance(rules, Mapping) or not rules:
        raise PolicyConfigurationError(f"Attribute policy {name!r} has no rules")

    kind = document.get('kind')
    if kind is None:
        kind = LevelPolicy.kind if 'levels' in document else TimeWindowPolicy.kind

    if kind == LevelPolicy.kind:
        return _parse_level_policy(name, document.get('levels'), rules)
    if kind == TimeWindowPolicy.kind:
        return _parse_time_policy(name, rules, document.get('restricted_actions'))
    raise PolicyConfigurationError(f"Attribute policy {name!r} has unknown kind {kind!r}")


def _parse_level_policy(name, levels, rules) -> LevelPolicy:
    errors = []
    if not _is_str_list(levels) or not levels:
        errors.append('levels must be a non-empty list of level names')
        levels = []
    parsed = {}
    for level, rule in rules.items():
        if level not in levels:
            errors.append(f"rule for undeclared level {level!r}")
            continue
        if not isinstance(rule, Mapping):
            errors.append(f"rule for {level!r} must be a mapping")
            continue
        read, write = rule.get('read', []), rule.get('write', [])
        if not _is_str_list(read) or not _is_str_list(write):
            errors.append(f"rule for {level!r} must list read/write roles")
            continue
        parsed[level] = LevelRule(read=frozenset(read), write=frozenset(write))
    if errors:
        raise PolicyConfigurationError(f"Invalid attribute policy {name!r}", errors)
    return LevelPolicy(name=name, levels=tuple(levels), rules=parsed)


def _parse_time_policy(name, rules, restricted_actions) -> TimeWindowPolicy:
    errors = []
    windows = {}
    for key, rule in rules.items():
        if not isinstance(rule, Mapping):
            errors.append(f"window {key!r} must be a mapping")
            continue
        try:
            window = TimeWindow(
                start=time.fromisoformat(rule['start']),
                end=time.fromisoformat(rule['end']),
                timezone=rule.get('timezone', BUSINESS_TIMEZONE),
            )
            window.zone
        except (KeyError, TypeError, ValueError, ZoneInfoNotFoundError) as e:
            errors.append(f"window {key!r}: {e}")
            continue
        windows[key] = window
    if 'business-hours' not in windows:
        errors.append("a 'business-hours' window is required")
    if restricted_actions is None:
        restricted_actions = ['delete', 'admin']
    elif not _is_str_list(restricted_actions):
        errors.append('restricted_actions must be a list of actions')
    if errors:
        raise PolicyConfigurationError(f"Invalid attribute policy {name!r}", errors)
    return TimeWindowPolicy(
        name=name,
        windows=windows,
        restricted_actions=frozenset(restricted_actions),
    )


def parse_field_table(document: Mapping[str, Any]) -> Dict[str, Tuple[str, ...]]:
    """Validate a field -> allowed actions table."""
    if not isinstance(document, Mapping):
        raise PolicyConfigurationError('Field permissions must be a mapping')
    bad = [name for name, actions in document.items() if not _is_str_list(actions)]
    if bad:
        raise PolicyConfigurationError(
            'Field permissions must map fields to action lists',
            [f"field {name!r}" for name in bad]
        )
    return {name: tuple(actions) for name, actions in document.items()}


def _is_str_list(value) -> bool:
    return isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value)


# ============================================================================
# Request / Result Types
# ============================================================================

@dataclass(frozen=True)
class AccessContext:
    """Contextual attributes of a single access request."""
    confidentiality: Optional[str] = None
    sensitivity: Optional[str] = None
    fields: Tuple[str, ...] = ()
    record_id: Optional[str] = None
    factory_id: Optional[str] = None
    tenant_id: Optional[str] = None
    location: Optional[str] = None

    _ALIASES = {
        'recordId': 'record_id',
        'factoryId': 'factory_id',
        'tenantId': 'tenant_id',
    }

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'AccessContext':
        """
        Build a context from a request mapping; camelCase keys are accepted.

        Raises:
            TypeError: if data is not a mapping or fields is not a field name
                or a list of field names
        """
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise TypeError(f"Access context must be a mapping, got {type(data).__name__}")
        values = {}
        for key, value in data.items():
            key = cls._ALIASES.get(key, key)
            if key in cls.__dataclass_fields__:
                values[key] = value
        fields_value = values.get('fields') or ()
        if isinstance(fields_value, str):
            fields_value = (fields_value,)
        if not _is_str_list(fields_value):
            raise TypeError("Access context fields must be a list of field names")
        values['fields'] = tuple(fields_value)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Non-empty values only, in a stable JSON-friendly shape."""
        data = asdict(self)
        data['fields'] = list(self.fields)
        return {k: v for k, v in data.items() if v not in (None, [])}


@dataclass
class UserContext:
    user_id: str
    role: str
    role_level: int
    inherits: Tuple[str, ...]
    permissions: Tuple[str, ...]
    scope: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    tenant_id: Optional[str] = None
    assigned_factories: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PermissionQuery:
    user_id: str
    action: str
    resource: str
    context: AccessContext = field(default_factory=AccessContext)

    def cache_key(self) -> str:
        return json.dumps({
            'userId': self.user_id,
            'action': self.action,
            'resource': self.resource,
            'context': self.context.to_dict(),
        }, sort_keys=True, default=str)


@dataclass(frozen=True)
class PermissionResult:
    allowed: bool
    reason: str
    check: Optional[str] = None

    @classmethod
    def permit(cls, reason: str, check: Optional[str] = None) -> 'PermissionResult':
        return cls(True, reason, check)

    @classmethod
    def deny(cls, reason: str, check: Optional[str] = None) -> 'PermissionResult':
        return cls(False, reason, check)

    def to_dict(self) -> Dict[str, Any]:
        return {'allowed': self.allowed, 'reason': self.reason}


# ============================================================================
# Built-in Defaults
# ============================================================================

DEFAULT_ROLE_HIERARCHY: Dict[str, Dict[str, Any]] = {
    'super-admin': {
        'role': 'super-admin',
        'level': 1,
        'inherits': [],
        'permissions': ['*'],
        'scope': 'global'
    },
    'factory-admin': {
        'role': 'factory-admin',
        'level': 2,
        'inherits': ['hr-staff', 'grievance-committee'],
        'permissions': ['read', 'write', 'delete'],
        'scope': 'assigned-factories'
    },
    'hr-staff': {
        'role': 'hr-staff',
        'level': 3,
        'inherits': ['worker'],
        'permissions': ['read', 'write'],
        'scope': 'assigned-factories'
    },
    'grievance-committee': {
        'role': 'grievance-committee',
        'level': 3,
        'inherits': ['worker'],
        'permissions': ['read', 'write'],
        'scope': 'assigned-factories'
    },
    'auditor': {
        'role': 'auditor',
        'level': 3,
        'inherits': [],
        'permissions': ['read', 'write-limited'],
        'scope': 'assigned-factories'
    },
    'worker': {
        'role': 'worker',
        'level': 4,
        'inherits': [],
        'permissions': ['read-limited'],
        'scope': 'own-records'
    }
}

DEFAULT_ATTRIBUTE_POLICIES: Dict[str, Dict[str, Any]] = {
    CONFIDENTIALITY_POLICY: {
        'name': CONFIDENTIALITY_POLICY,
        'kind': 'levels',
        'levels': ['public', 'internal', 'confidential', 'restricted'],
        'rules': {
            'public': {'read': ['*'], 'write': ['super-admin', 'factory-admin']},
            'internal': {'read': ['super-admin', 'factory-admin', 'hr-staff'],
                         'write': ['super-admin', 'factory-admin']},
            'confidential': {'read': ['super-admin', 'factory-admin'], 'write': ['super-admin']},
            'restricted': {'read': ['super-admin'], 'write': ['super-admin']}
        }
    },
    SENSITIVITY_POLICY: {
        'name': SENSITIVITY_POLICY,
        'kind': 'levels',
        'levels': ['low', 'medium', 'high', 'critical'],
        'rules': {
            'low': {'read': ['*'], 'write': ['super-admin', 'factory-admin', 'hr-staff']},
            'medium': {'read': ['super-admin', 'factory-admin', 'hr-staff'],
                       'write': ['super-admin', 'factory-admin']},
            'high': {'read': ['super-admin', 'factory-admin'], 'write': ['super-admin']},
            'critical': {'read': ['super-admin'], 'write': ['super-admin']}
        }
    },
    TIME_POLICY: {
        'name': TIME_POLICY,
        'kind': 'time-windows',
        'rules': {
            'business-hours': {'start': '09:00', 'end': '17:00', 'timezone': BUSINESS_TIMEZONE},
            'after-hours': {'start': '17:00', 'end': '09:00', 'timezone': BUSINESS_TIMEZONE}
        },
        'restricted_actions': ['delete', 'admin']
    }
}

_FULL_ACCESS = ['read', 'write', 'delete']
_USER_FIELDS = {
    'name': ['read', 'write'],
    'email': ['read', 'write'],
    'role': ['read'],
    'password': ['read']
}

DEFAULT_FIELD_PERMISSIONS: Dict[str, Dict[str, Dict[str, List[str]]]] = {
    'super-admin': {
        'user': {'*': _FULL_ACCESS},
        'factory': {'*': _FULL_ACCESS},
        'document': {'*': _FULL_ACCESS},
        'case': {'*': _FULL_ACCESS},
        'cap': {'*': _FULL_ACCESS}
    },
    'factory-admin': {
        'user': _USER_FIELDS,
        'factory': {'*': ['read', 'write']},
        'document': {'*': ['read', 'write']},
        'case': {'*': ['read', 'write']},
        'cap': {'*': ['read', 'write']}
    },
    'hr-staff': {
        'user': _USER_FIELDS,
        'factory': {'name': ['read'], 'location': ['read']},
        'document': {'*': ['read', 'write']},
        'case': {'*': ['read', 'write']},
        'cap': {'*': ['read', 'write']}
    }
}

DEFAULT_USER_ATTRIBUTES: Dict[str, Any] = {
    'clearance': 'standard',
    'department': 'general',
    'location': 'main',
    'certifications': [],
    'training': [],
    'last_audit': None
}


def default_role_hierarchy() -> Dict[str, RoleHierarchyEntry]:
    return {
        role: RoleHierarchyEntry.from_document(doc)
        for role, doc in DEFAULT_ROLE_HIERARCHY.items()
    }


def default_attribute_policies() -> Dict[str, AttributePolicy]:
    return {
        name: parse_attribute_policy(doc)
        for name, doc in DEFAULT_ATTRIBUTE_POLICIES.items()
    }


def default_field_permissions(role: str, resource: str) -> Dict[str, Tuple[str, ...]]:
    table = DEFAULT_FIELD_PERMISSIONS.get(role, {}).get(resource, {})
    return {name: tuple(actions) for name, actions in table.items()}
