"""
Audit Logging Module
====================

Records every access decision made by the permission evaluator so that
compliance officers can answer who tried to do what, on which record,
and why it was allowed or refused.

Features:
- One row per decision, including the stage that denied it
- Query helpers for investigations (per user, recent denials)
- Statistics grouped by failing stage for dashboards
- JSON / CSV export
"""

import json
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

from sqlalchemy import desc
from sqlalchemy.orm import sessionmaker

from models.database import get_session
from models.entities import AuditLog, AccessDecision
from .policies import PermissionQuery, PermissionResult

CHECK_STAGES = ('context', 'rbac', 'abac', 'field', 'record')


class AuditLogger:
    """
    Audit logging service for access control decisions.

    Log entries are returned as plain dictionaries because each call runs
    in its own short-lived session.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def _session(self):
        return get_session(self.session_factory)

    def log_access_decision(
        self,
        query: PermissionQuery,
        result: PermissionResult,
        role: Optional[str] = None
    ) -> int:
        """
        Log an access control decision.

        Args:
            query: The evaluated permission query
            result: The decision returned to the caller
            role: Role the user held at evaluation time

        Returns:
            Id of the created AuditLog row
        """
        with self._session() as session:
            entry = AuditLog(
                user_id=query.user_id,
                role=role,
                action=query.action,
                resource_type=query.resource,
                record_id=query.context.record_id,
                decision=AccessDecision.PERMIT if result.allowed else AccessDecision.DENY,
                decision_reason=result.reason,
                failed_check=None if result.allowed else result.check,
                request_details=json.dumps(query.context.to_dict())
            )
            session.add(entry)
            session.flush()
            return entry.id

    def get_logs(
        self,
        user_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        action: Optional[str] = None,
        decision: Optional[AccessDecision] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Query audit logs with various filters, newest first.
        """
        with self._session() as session:
            query = session.query(AuditLog)

            if user_id is not None:
                query = query.filter(AuditLog.user_id == user_id)
            if resource_type is not None:
                query = query.filter(AuditLog.resource_type == resource_type)
            if action is not None:
                query = query.filter(AuditLog.action == action)
            if decision is not None:
                query = query.filter(AuditLog.decision == decision)
            if start_time is not None:
                query = query.filter(AuditLog.timestamp >= start_time)
            if end_time is not None:
                query = query.filter(AuditLog.timestamp <= end_time)

            logs = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit).offset(offset)
            return [self._to_dict(log) for log in logs]

    def get_recent_denials(self, hours: int = 24, limit: int = 50) -> List[Dict[str, Any]]:
        """
        Recent denials, for spotting misconfigured roles or probing users.
        """
        cutoff = datetime.utcnow() - timedelta(hours=hours)
        with self._session() as session:
            logs = session.query(AuditLog).filter(
                AuditLog.decision == AccessDecision.DENY,
                AuditLog.timestamp >= cutoff
            ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)
            return [self._to_dict(log) for log in logs]

    def get_user_activity(self, user_id: str, hours: int = 24) -> Dict[str, Any]:
        """
        Activity summary for a specific user.
        """
        cutoff = datetime.utcnow() - timedelta(hours=hours)
        with self._session() as session:
            logs = session.query(AuditLog).filter(
                AuditLog.user_id == user_id,
                AuditLog.timestamp >= cutoff
            ).all()

            total_requests = len(logs)
            permits = sum(1 for l in logs if l.decision == AccessDecision.PERMIT)
            denials = sum(1 for l in logs if l.decision == AccessDecision.DENY)

            actions = {}
            resources = {}
            for log in logs:
                actions[log.action] = actions.get(log.action, 0) + 1
                if log.resource_type:
                    resources[log.resource_type] = resources.get(log.resource_type, 0) + 1

            return {
                'user_id': user_id,
                'period_hours': hours,
                'total_requests': total_requests,
                'permits': permits,
                'denials': denials,
                'denial_rate': denials / total_requests if total_requests > 0 else 0,
                'actions': actions,
                'resources_accessed': resources,
                'first_activity': min(l.timestamp for l in logs).isoformat() if logs else None,
                'last_activity': max(l.timestamp for l in logs).isoformat() if logs else None
            }

    def export_logs(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        format: str = 'json'
    ) -> str:
        """
        Export audit logs as JSON or CSV.

        Raises:
            ValueError: for an unsupported format
        """
        if format not in ('json', 'csv'):
            raise ValueError(f"Unsupported format: {format}")

        logs = self.get_logs(start_time=start_time, end_time=end_time, limit=10000)

        if format == 'json':
            return json.dumps(logs, indent=2, default=str)

        lines = ['timestamp,user_id,role,action,resource_type,record_id,decision,failed_check']
        for log in logs:
            lines.append(
                f"{log['timestamp']},{log['user_id']},{log['role'] or ''},"
                f"{log['action']},{log['resource_type'] or ''},{log['record_id'] or ''},"
                f"{log['decision']},{log['failed_check'] or ''}"
            )
        return '\n'.join(lines)

    def get_statistics(self, hours: int = 24) -> Dict[str, Any]:
        """
        Overall access control statistics for dashboards.
        """
        cutoff = datetime.utcnow() - timedelta(hours=hours)
        with self._session() as session:
            logs = session.query(AuditLog).filter(AuditLog.timestamp >= cutoff).all()

            total = len(logs)
            permits = sum(1 for l in logs if l.decision == AccessDecision.PERMIT)
            denials = total - permits

            by_check = {stage: 0 for stage in CHECK_STAGES}
            for log in logs:
                if log.failed_check in by_check:
                    by_check[log.failed_check] += 1

            return {
                'period_hours': hours,
                'total_decisions': total,
                'permits': permits,
                'denials': denials,
                'permit_rate': permits / total if total > 0 else 0,
                'denial_rate': denials / total if total > 0 else 0,
                'denials_by_check': by_check,
                'unique_users': len(set(l.user_id for l in logs if l.user_id)),
                'unique_resources': len(set(l.resource_type for l in logs if l.resource_type))
            }

    @staticmethod
    def _to_dict(log: AuditLog) -> Dict[str, Any]:
        return {
            'id': log.id,
            'timestamp': log.timestamp.isoformat() if log.timestamp else None,
            'user_id': log.user_id,
            'role': log.role,
            'action': log.action,
            'resource_type': log.resource_type,
            'record_id': log.record_id,
            'decision': log.decision.value,
            'decision_reason': log.decision_reason,
            'failed_check': log.failed_check,
            'request_details': json.loads(log.request_details) if log.request_details else {}
        }
