import pytest

from core.exceptions import LookupFailure
from core.policies import AccessContext, PermissionResult, UserContext
from core.record_engine import RecordLevelEngine


def make_user(user_id, factories=(), tenant_id="tenant-angkor"):
    return UserContext(
        user_id=user_id,
        role="hr-staff",
        role_level=3,
        inherits=(),
        permissions=(),
        scope="assigned-factories",
        tenant_id=tenant_id,
        assigned_factories=list(factories),
    )


@pytest.fixture
def records(users):
    users.register_record("case", "GRV-1", created_by="bopha", owner_id="vanna",
                          factory_id="PP-01", tenant_id="tenant-angkor")
    return RecordLevelEngine(users)


def check(engine, user, resource="case", **context):
    return engine.check_record_level(user, "read", resource, AccessContext(**context))


class TestRecordLevel:
    def test_no_record(self, records):
        result = check(records, make_user("x"))
        assert result == PermissionResult.permit("No record restrictions", "record")

    def test_creator_and_owner(self, records):
        assert check(records, make_user("bopha", tenant_id=None), record_id="GRV-1").reason == "Record owner"
        assert check(records, make_user("vanna", tenant_id=None), record_id="GRV-1").reason == "Record owner"

    def test_ownership_is_per_resource_type(self, records):
        result = check(records, make_user("bopha", tenant_id=None), resource="cap", record_id="GRV-1")
        assert not result.allowed

    def test_factory_assigned(self, records):
        user = make_user("sreymom", factories=["PP-01"], tenant_id=None)
        result = check(records, user, record_id="GRV-1", factory_id="PP-01")
        assert result == PermissionResult.permit("Factory assigned", "record")

    def test_tenant_access(self, records):
        result = check(records, make_user("rithy"), record_id="GRV-1", tenant_id="tenant-angkor")
        assert result.reason == "Tenant access"

    def test_missing_tenant_never_matches(self, records):
        result = check(records, make_user("rithy", tenant_id=None), record_id="GRV-1")
        assert result == PermissionResult.deny("Record access denied", "record")

    def test_other_tenant_denied(self, records):
        result = check(
            records, make_user("piseth", factories=["SR-01"], tenant_id="tenant-mekong"),
            record_id="GRV-1", factory_id="PP-01", tenant_id="tenant-angkor",
        )
        assert result.reason == "Record access denied"

    def test_lookup_failure_becomes_denial(self, records, monkeypatch):
        def boom(user_id, resource, record_id):
            raise LookupFailure("database unavailable")

        monkeypatch.setattr(records.users, "is_record_owner", boom)
        result = check(records, make_user("bopha"), record_id="GRV-1")
        assert result == PermissionResult.deny("Record check error", "record")
