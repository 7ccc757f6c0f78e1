import json

import pytest

from core.exceptions import PolicyConfigurationError
from core.policies import RoleHierarchyEntry
from core.policy_store import PolicyStore
from models.database import get_session
from models.entities import AttributePolicyRecord, FieldPermissionRecord, RoleHierarchyRecord


class TestSnapshot:
    def test_empty_database_uses_defaults(self, store):
        assert "super-admin" in store.role_hierarchy
        assert set(store.attribute_policies) == {"confidentiality", "data-sensitivity", "time-based"}

    def test_snapshot_is_read_only(self, store):
        with pytest.raises(TypeError):
            store.role_hierarchy["intruder"] = None

    def test_seed_and_edit(self, store):
        store.seed_defaults()
        store.save_role_hierarchy(RoleHierarchyEntry(
            role="line-lead", level=3, inherits=("worker",),
            permissions=("read",), scope="assigned-factories",
        ))
        assert store.get_role("line-lead").inherits == ("worker",)
        assert len(store.role_hierarchy) == 7

    def test_reload_sees_other_writers(self, session_factory):
        reader = PolicyStore(session_factory)
        writer = PolicyStore(session_factory)
        writer.seed_defaults()
        writer.save_role_hierarchy(RoleHierarchyEntry(role="guest", level=5, scope="own-records"))
        assert reader.get_role("guest") is None
        reader.reload()
        assert reader.get_role("guest") is not None

    def test_worker_always_present(self, store, session_factory):
        store.save_role_hierarchy(RoleHierarchyEntry(role="auditor", level=3, scope="global"))
        assert set(store.role_hierarchy) == {"auditor", "worker"}

    def test_malformed_rows_are_skipped(self, store, session_factory):
        with get_session(session_factory) as session:
            session.add(RoleHierarchyRecord(
                role="broken", level=0, inherits="[]", permissions="[]", scope="nowhere"
            ))
            session.add(RoleHierarchyRecord(
                role="auditor", level=3, inherits="[]", permissions='["read"]', scope="global"
            ))
            session.add(AttributePolicyRecord(
                name="confidentiality", document=json.dumps({"name": "confidentiality", "rules": {}})
            ))
        store.reload()
        assert store.get_role("broken") is None
        assert store.get_role("auditor").permissions == ("read",)
        # The invalid override leaves the default in place
        assert store.attribute_policy("confidentiality").rule_for("public") is not None

    def test_get_role_none(self, store):
        assert store.get_role(None) is None


class TestAttributePolicyAdministration:
    def test_save_valid_policy(self, store):
        policy = store.save_attribute_policy({
            "name": "time-based",
            "kind": "time-windows",
            "rules": {"business-hours": {"start": "07:00", "end": "19:00"}},
        })
        assert store.attribute_policy("time-based") == policy

    def test_save_invalid_policy_raises(self, store, session_factory):
        with pytest.raises(PolicyConfigurationError):
            store.save_attribute_policy({"name": "confidentiality", "levels": [], "rules": {"x": {}}})
        with get_session(session_factory) as session:
            assert session.query(AttributePolicyRecord).count() == 0


class TestFieldPermissions:
    def test_default_table(self, store):
        assert store.field_permissions("factory-admin", "user")["password"] == ("read",)

    def test_override_wins(self, store):
        store.save_field_permissions("auditor", "case", {"complainant": []})
        assert store.field_permissions("auditor", "case") == {"complainant": ()}

    def test_override_replaced(self, store, session_factory):
        store.save_field_permissions("auditor", "case", {"summary": ["read"]})
        store.save_field_permissions("auditor", "case", {"status": ["read"]})
        assert store.field_permissions("auditor", "case") == {"status": ("read",)}
        with get_session(session_factory) as session:
            assert session.query(FieldPermissionRecord).count() == 1

    def test_corrupt_override_falls_back(self, store, session_factory):
        with get_session(session_factory) as session:
            session.add(FieldPermissionRecord(role="hr-staff", resource_type="factory", document="{not json"))
        assert store.field_permissions("hr-staff", "factory") == {
            "name": ("read",), "location": ("read",)
        }


class TestPermissionPolicies:
    def test_validate(self):
        errors = PolicyStore.validate_permission_policy({"name": "ab", "type": "acl"})
        assert errors == [
            "Policy name must be at least 3 characters",
            "Invalid policy type",
            "Policy rules are required",
            "Policy scope is required",
        ]
        assert PolicyStore.validate_permission_policy(
            {"name": "Night shift", "type": "abac", "rules": {"a": 1}, "scope": "PP-01"}
        ) == []

    def test_generate_policy_id(self):
        assert PolicyStore.generate_policy_id("Night Shift Deletes!", now=0) == "nightshi-0"
        # 36000 ms in base 36
        assert PolicyStore.generate_policy_id("ab", now=36) == "ab-rs0"

    def test_create_and_list(self, store):
        policy_id = store.create_permission_policy(
            "Night shift", "abac", {"deny": ["delete"]}, "PP-01", created_by="sokha"
        )
        assert policy_id.startswith("nightshi-")
        [policy] = store.list_permission_policies()
        assert policy["id"] == policy_id
        assert policy["rules"] == {"deny": ["delete"]}
        assert policy["status"] == "active"

    def test_create_invalid(self, store):
        with pytest.raises(PolicyConfigurationError) as exc_info:
            store.create_permission_policy("x", "rbac", {}, "global")
        assert "Policy rules are required" in exc_info.value.errors
