import pytest
from sqlalchemy.exc import OperationalError

from core.exceptions import LookupFailure
from core.policies import DEFAULT_USER_ATTRIBUTES
from models.database import Base


class TestUserRepository:
    def test_create_and_get(self, users):
        users.create_user("dara", "factory-admin", tenant_id="tenant-angkor",
                          assigned_factories=["PP-02", "PP-01"])
        user = users.get_user("dara")
        assert user.role == "factory-admin"
        assert user.assigned_factories == ["PP-01", "PP-02"]
        assert user.is_active

    def test_missing_user(self, users):
        assert users.get_user("ghost") is None

    def test_list_users(self, demo, users):
        assert [u.user_id for u in users.list_users()][:2] == ["bopha", "dara"]

    def test_attributes(self, users):
        users.create_user("sreymom", "hr-staff")
        assert users.get_user_attributes("sreymom") == DEFAULT_USER_ATTRIBUTES
        users.set_attribute("sreymom", "location", "PP-01")
        users.set_attribute("sreymom", "certifications", ["first-aid"])
        users.set_attribute("sreymom", "location", "PP-02")
        assert users.get_user_attributes("sreymom") == {
            "location": "PP-02", "certifications": ["first-aid"]
        }

    def test_assign_factory(self, users):
        users.create_user("vanna", "grievance-committee")
        assert users.assign_factory("vanna", "PP-01")
        assert not users.assign_factory("vanna", "PP-01")
        assert users.get_user("vanna").assigned_factories == ["PP-01"]

    def test_set_role(self, users):
        users.create_user("bopha", "worker")
        users.set_role("bopha", "hr-staff")
        assert users.get_user("bopha").role == "hr-staff"
        with pytest.raises(LookupFailure):
            users.set_role("ghost", "hr-staff")

    def test_record_ownership(self, users):
        users.register_record("cap", "CAP-1", created_by="dara", owner_id="sokha")
        assert users.is_record_owner("dara", "cap", "CAP-1")
        assert users.is_record_owner("sokha", "cap", "CAP-1")
        assert not users.is_record_owner("bopha", "cap", "CAP-1")
        assert not users.is_record_owner("dara", "cap", "CAP-2")
        assert users.list_records("cap")[0]["owner_id"] == "sokha"

    def test_database_errors_raise_lookup_failure(self, users, engine):
        Base.metadata.drop_all(bind=engine)
        with pytest.raises(LookupFailure) as exc_info:
            users.get_user("dara")
        assert isinstance(exc_info.value.__cause__, OperationalError)
