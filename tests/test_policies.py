import json
from datetime import time

import pytest

from core.exceptions import PolicyConfigurationError
from core.policies import (
    AccessContext,
    LevelPolicy,
    PermissionQuery,
    PermissionResult,
    RoleHierarchyEntry,
    TimeWindow,
    TimeWindowPolicy,
    default_attribute_policies,
    default_field_permissions,
    default_role_hierarchy,
    parse_attribute_policy,
    parse_field_table,
)


class TestRoleHierarchyEntry:
    def test_defaults_parse(self):
        roles = default_role_hierarchy()
        assert set(roles) == {
            "super-admin", "factory-admin", "hr-staff",
            "grievance-committee", "auditor", "worker",
        }
        assert roles["factory-admin"].inherits == ("hr-staff", "grievance-committee")
        assert roles["worker"].scope == "own-records"

    def test_grants(self):
        roles = default_role_hierarchy()
        assert roles["super-admin"].grants("anything")
        assert roles["auditor"].grants("write-limited")
        assert not roles["auditor"].grants("write")

    def test_invalid_document_collects_errors(self):
        with pytest.raises(PolicyConfigurationError) as exc_info:
            RoleHierarchyEntry.from_document(
                {"role": "", "level": 0, "permissions": "read", "scope": "everywhere"}
            )
        assert len(exc_info.value.errors) == 4

    def test_document_round_trip(self):
        doc = {
            "role": "line-lead", "level": 3, "inherits": ["worker"],
            "permissions": ["read"], "scope": "assigned-factories",
        }
        assert RoleHierarchyEntry.from_document(doc).to_document() == doc


class TestAttributePolicies:
    def test_default_kinds(self):
        policies = default_attribute_policies()
        assert isinstance(policies["confidentiality"], LevelPolicy)
        assert isinstance(policies["data-sensitivity"], LevelPolicy)
        assert isinstance(policies["time-based"], TimeWindowPolicy)
        assert policies["confidentiality"].levels == (
            "public", "internal", "confidential", "restricted"
        )

    def test_level_rule_wildcard(self):
        rule = default_attribute_policies()["confidentiality"].rule_for("public")
        assert rule.admits("read", "worker")
        assert not rule.admits("write", "worker")
        assert rule.admits("write", "factory-admin")

    def test_kind_inferred_from_levels(self):
        policy = parse_attribute_policy({
            "name": "export-control",
            "levels": ["open", "controlled"],
            "rules": {"open": {"read": ["*"], "write": ["*"]}},
        })
        assert policy.kind == "levels"
        assert policy.rule_for("controlled") is None

    def test_rule_for_undeclared_level_rejected(self):
        with pytest.raises(PolicyConfigurationError):
            parse_attribute_policy({
                "name": "confidentiality",
                "levels": ["public"],
                "rules": {"secret": {"read": [], "write": []}},
            })

    def test_time_policy_requires_business_hours(self):
        with pytest.raises(PolicyConfigurationError) as exc_info:
            parse_attribute_policy({
                "name": "time-based",
                "kind": "time-windows",
                "rules": {"night-shift": {"start": "22:00", "end": "06:00"}},
            })
        assert "a 'business-hours' window is required" in exc_info.value.errors

    def test_time_policy_rejects_bad_window(self):
        with pytest.raises(PolicyConfigurationError):
            parse_attribute_policy({
                "name": "time-based",
                "kind": "time-windows",
                "rules": {"business-hours": {"start": "9am", "end": "17:00"}},
            })

    def test_time_policy_rejects_unknown_timezone(self):
        with pytest.raises(PolicyConfigurationError):
            parse_attribute_policy({
                "name": "time-based",
                "kind": "time-windows",
                "rules": {"business-hours": {
                    "start": "09:00", "end": "17:00", "timezone": "Mars/Olympus_Mons"
                }},
            })

    def test_unknown_kind(self):
        with pytest.raises(PolicyConfigurationError):
            parse_attribute_policy({"name": "x", "kind": "geo", "rules": {"a": {}}})

    def test_to_document_is_parseable(self):
        for policy in default_attribute_policies().values():
            document = json.loads(json.dumps(policy.to_document()))
            assert parse_attribute_policy(document) == policy


class TestTimeWindow:
    def test_half_open(self):
        window = TimeWindow(time(9, 0), time(17, 0))
        assert window.contains(time(9, 0))
        assert window.contains(time(16, 59, 59))
        assert not window.contains(time(17, 0))
        assert not window.contains(time(8, 59))

    def test_wraps_midnight(self):
        window = TimeWindow(time(17, 0), time(9, 0))
        assert window.contains(time(23, 0))
        assert window.contains(time(3, 0))
        assert not window.contains(time(12, 0))


class TestFieldTables:
    def test_defaults(self):
        table = default_field_permissions("hr-staff", "factory")
        assert table == {"name": ("read",), "location": ("read",)}
        assert default_field_permissions("worker", "user") == {}

    def test_parse_rejects_non_lists(self):
        with pytest.raises(PolicyConfigurationError):
            parse_field_table({"name": "read"})


class TestRequestTypes:
    def test_context_accepts_camel_case(self):
        context = AccessContext.from_mapping({
            "recordId": "GRV-1", "factoryId": "PP-01", "tenantId": "t1",
            "fields": "name", "unknown": 1,
        })
        assert context.record_id == "GRV-1"
        assert context.factory_id == "PP-01"
        assert context.tenant_id == "t1"
        assert context.fields == ("name",)

    @pytest.mark.parametrize("data", [["recordId", "x"], {"fields": 5}, {"fields": [None]}])
    def test_context_rejects_malformed_input(self, data):
        with pytest.raises(TypeError):
            AccessContext.from_mapping(data)

    def test_context_to_dict_drops_empty(self):
        assert AccessContext().to_dict() == {}
        assert AccessContext(fields=("a",), location="PP-01").to_dict() == {
            "fields": ["a"], "location": "PP-01"
        }

    def test_cache_key_is_stable(self):
        a = PermissionQuery("u", "read", "case", AccessContext.from_mapping(
            {"confidentiality": "public", "recordId": "R1"}
        ))
        b = PermissionQuery("u", "read", "case", AccessContext.from_mapping(
            {"record_id": "R1", "confidentiality": "public"}
        ))
        assert a.cache_key() == b.cache_key()
        assert json.loads(a.cache_key())["userId"] == "u"

    def test_result_to_dict(self):
        assert PermissionResult.deny("No RBAC permission", "rbac").to_dict() == {
            "allowed": False, "reason": "No RBAC permission"
        }
