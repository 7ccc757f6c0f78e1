import csv
import io
import json
from datetime import datetime, timedelta

import pytest

from core.policies import AccessContext, PermissionQuery, PermissionResult
from models.entities import AccessDecision


@pytest.fixture
def populated(audit):
    decisions = [
        ("dara", "read", "cap", {}, PermissionResult.permit("All permission checks passed"), "factory-admin"),
        ("dara", "delete", "cap", {}, PermissionResult.deny(
            "Action restricted outside business hours", "abac"), "factory-admin"),
        ("bopha", "write", "case", {"confidentiality": "confidential"},
         PermissionResult.deny("No RBAC permission", "rbac"), "worker"),
        ("ghost", "read", "case", {}, PermissionResult.deny("User not found", "context"), None),
    ]
    for user_id, action, resource, context, result, role in decisions:
        query = PermissionQuery(user_id, action, resource, AccessContext.from_mapping(context))
        audit.log_access_decision(query, result, role=role)
    return audit


class TestAuditLogger:
    def test_log_returns_id(self, audit):
        query = PermissionQuery("sokha", "read", "document", AccessContext(record_id="DOC-1"))
        log_id = audit.log_access_decision(query, PermissionResult.permit("ok"), role="super-admin")
        [log] = audit.get_logs()
        assert log["id"] == log_id
        assert log["decision"] == "PERMIT"
        assert log["failed_check"] is None
        assert log["record_id"] == "DOC-1"

    def test_filters(self, populated):
        assert len(populated.get_logs(user_id="dara")) == 2
        assert len(populated.get_logs(decision=AccessDecision.DENY)) == 3
        assert len(populated.get_logs(resource_type="case", action="write")) == 1
        assert len(populated.get_logs(limit=2)) == 2

    def test_newest_first(self, populated):
        logs = populated.get_logs()
        assert [l["user_id"] for l in logs] == ["ghost", "bopha", "dara", "dara"]

    def test_time_window(self, populated):
        future = datetime.utcnow() + timedelta(hours=1)
        assert populated.get_logs(start_time=future) == []

    def test_recent_denials(self, populated):
        denials = populated.get_recent_denials()
        assert {d["failed_check"] for d in denials} == {"abac", "rbac", "context"}

    def test_user_activity(self, populated):
        activity = populated.get_user_activity("dara")
        assert activity["total_requests"] == 2
        assert activity["denial_rate"] == 0.5
        assert activity["actions"] == {"read": 1, "delete": 1}
        assert activity["resources_accessed"] == {"cap": 2}

    def test_statistics(self, populated):
        stats = populated.get_statistics()
        assert stats["total_decisions"] == 4
        assert stats["permits"] == 1
        assert stats["denials_by_check"] == {
            "context": 1, "rbac": 1, "abac": 1, "field": 0, "record": 0
        }
        assert stats["unique_users"] == 3

    def test_empty_statistics(self, audit):
        stats = audit.get_statistics()
        assert stats["total_decisions"] == 0
        assert stats["permit_rate"] == 0

    def test_export_json(self, populated):
        exported = json.loads(populated.export_logs(format="json"))
        assert len(exported) == 4
        assert exported[1]["request_details"] == {"confidentiality": "confidential"}

    def test_export_csv(self, populated):
        rows = list(csv.reader(io.StringIO(populated.export_logs(format="csv"))))
        assert rows[0][0] == "timestamp"
        assert len(rows) == 5
        assert rows[1][1:] == ["ghost", "", "read", "case", "", "DENY", "context"]

    def test_export_rejects_unknown_format(self, audit):
        with pytest.raises(ValueError):
            audit.export_logs(format="xml")
