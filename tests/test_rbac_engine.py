import pytest

from core.exceptions import PolicyConfigurationError
from core.policies import PermissionResult, RoleHierarchyEntry, UserContext
from core.rbac_engine import RBACEngine


def make_user(engine, role, user_id="u1"):
    entry = engine.resolve_role_or_default(role)
    return UserContext(
        user_id=user_id,
        role=role,
        role_level=entry.level,
        inherits=entry.inherits,
        permissions=entry.permissions,
        scope=entry.scope,
    )


@pytest.fixture
def rbac(store):
    return RBACEngine(store)


class TestCheckRBAC:
    def test_wildcard(self, rbac):
        result = rbac.check_rbac(make_user(rbac, "super-admin"), "purge", "document")
        assert result == PermissionResult.permit("Direct permission", "rbac")

    def test_direct(self, rbac):
        assert rbac.check_rbac(make_user(rbac, "factory-admin"), "delete", "cap").reason == "Direct permission"

    def test_inherited(self, rbac):
        result = rbac.check_rbac(make_user(rbac, "hr-staff"), "read-limited", "case")
        assert result.allowed
        assert result.reason == "Inherited from worker"

    def test_inheritance_is_one_level(self, rbac):
        # factory-admin -> hr-staff -> worker: worker's token is not reachable
        result = rbac.check_rbac(make_user(rbac, "factory-admin"), "read-limited", "case")
        assert result == PermissionResult.deny("No RBAC permission", "rbac")

    def test_denied(self, rbac):
        assert not rbac.check_rbac(make_user(rbac, "worker"), "write", "case").allowed
        assert not rbac.check_rbac(make_user(rbac, "auditor"), "write", "case").allowed

    def test_unknown_role_degrades_to_worker(self, rbac):
        user = make_user(rbac, "contractor")
        assert user.permissions == ("read-limited",)
        assert rbac.check_rbac(user, "read-limited", "case").allowed
        assert not rbac.check_rbac(user, "read", "case").allowed

    def test_errors_become_denials(self, rbac, monkeypatch):
        def boom(role):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(rbac, "resolve_role_or_default", boom)
        result = rbac.check_rbac(make_user(RBACEngine(rbac.store), "hr-staff"), "read-limited", "case")
        assert result == PermissionResult.deny("RBAC check error", "rbac")


class TestHierarchy:
    def test_get_role_hierarchy(self, rbac):
        assert rbac.get_role_hierarchy("auditor").level == 3
        assert rbac.get_role_hierarchy("nobody").role == "worker"

    def test_missing_fallback_role(self, store, monkeypatch):
        monkeypatch.setattr(store, "get_role", lambda role: None)
        with pytest.raises(PolicyConfigurationError):
            RBACEngine(store).resolve_role_or_default("nobody")

    def test_effective_permissions(self, rbac):
        user = make_user(rbac, "factory-admin")
        assert rbac.get_effective_permissions(user) == ["read", "write", "delete"]
        assert rbac.get_effective_permissions(make_user(rbac, "hr-staff")) == [
            "read", "write", "read-limited"
        ]

    def test_inherited_role_from_store(self, store):
        store.seed_defaults()
        store.save_role_hierarchy(RoleHierarchyEntry(
            role="line-lead", level=3, inherits=("auditor",),
            permissions=("read",), scope="assigned-factories",
        ))
        rbac = RBACEngine(store)
        result = rbac.check_rbac(make_user(rbac, "line-lead"), "write-limited", "cap")
        assert result.reason == "Inherited from auditor"
