"""
Demo Data Loader
================

Creates sample data modelled on two garment-factory tenants:

- Angkor Apparel (tenant-angkor): factories PP-01 and PP-02 in Phnom Penh
- Mekong Textiles (tenant-mekong): factory SR-01 in Siem Reap

with one user per platform role, a handful of compliance records
(grievance cases, CAPs, documents) and the built-in role hierarchy and
attribute policies stored so they can be edited from the CLI.
"""

from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from models.database import init_db, get_session
from models.entities import (
    User, UserAttribute, FactoryAssignment, ComplianceRecord,
    RoleHierarchyRecord, AttributePolicyRecord, FieldPermissionRecord,
    PermissionPolicy
)
from core.policy_store import PolicyStore
from core.user_repository import UserRepository

DEMO_USERS = [
    # (id, role, tenant, factories, full name, email)
    ('sokha', 'super-admin', 'tenant-angkor', [], 'Sokha Chan', 'sokha@angkor-compliance.example'),
    ('dara', 'factory-admin', 'tenant-angkor', ['PP-01', 'PP-02'], 'Dara Pich', 'dara@angkor-apparel.example'),
    ('sreymom', 'hr-staff', 'tenant-angkor', ['PP-01'], 'Sreymom Keo', 'sreymom@angkor-apparel.example'),
    ('vanna', 'grievance-committee', 'tenant-angkor', ['PP-01'], 'Vanna Lim', 'vanna@angkor-apparel.example'),
    ('rithy', 'auditor', 'tenant-mekong', ['SR-01'], 'Rithy Som', 'rithy@audit-partners.example'),
    ('bopha', 'worker', 'tenant-angkor', ['PP-01'], 'Bopha Heng', 'bopha@angkor-apparel.example'),
    ('piseth', 'worker', 'tenant-mekong', ['SR-01'], 'Piseth Noun', 'piseth@mekong-textiles.example'),
]

DEMO_ATTRIBUTES = {
    'sokha': {'clearance': 'elevated', 'department': 'compliance', 'location': 'phnom-penh-hq',
              'certifications': ['SA8000 Lead Auditor'], 'training': ['platform-admin']},
    'dara': {'clearance': 'elevated', 'department': 'management', 'location': 'PP-01',
             'certifications': [], 'training': ['grievance-handling']},
    'sreymom': {'clearance': 'standard', 'department': 'hr', 'location': 'PP-01',
                'certifications': [], 'training': ['labour-law-basics']},
    'vanna': {'clearance': 'standard', 'department': 'grievance-committee', 'location': 'PP-01',
              'certifications': [], 'training': ['grievance-handling']},
    'rithy': {'clearance': 'standard', 'department': 'external-audit', 'location': 'SR-01',
              'certifications': ['BSCI Auditor'], 'training': []},
    'bopha': {'clearance': 'standard', 'department': 'production', 'location': 'PP-01',
              'certifications': [], 'training': []},
    # piseth keeps the platform default attributes
}

DEMO_RECORDS = [
    # (resource, record id, created by, owner, factory, tenant)
    ('case', 'GRV-2024-001', 'bopha', 'vanna', 'PP-01', 'tenant-angkor'),
    ('case', 'GRV-2024-002', 'piseth', 'piseth', 'SR-01', 'tenant-mekong'),
    ('cap', 'CAP-2024-014', 'dara', 'dara', 'PP-02', 'tenant-angkor'),
    ('document', 'DOC-FIRE-SAFETY', 'sokha', 'sokha', 'PP-01', 'tenant-angkor'),
    ('document', 'DOC-SR-PAYROLL', 'rithy', 'rithy', 'SR-01', 'tenant-mekong'),
    ('user', 'bopha', 'sreymom', 'bopha', 'PP-01', 'tenant-angkor'),
]


def load_demo_data(session_factory: Optional[sessionmaker] = None, bind: Optional[Engine] = None):
    """
    Load the demo tenants, users, records and default policies.

    Existing rows are removed first so loading is idempotent.
    """
    init_db(bind)

    with get_session(session_factory) as session:
        for model in (
            PermissionPolicy, FieldPermissionRecord, AttributePolicyRecord,
            RoleHierarchyRecord, ComplianceRecord, UserAttribute,
            FactoryAssignment, User
        ):
            session.query(model).delete()

    users = UserRepository(session_factory)
    for user_id, role, tenant_id, factories, full_name, email in DEMO_USERS:
        users.create_user(
            user_id,
            role,
            tenant_id=tenant_id,
            email=email,
            full_name=full_name,
            assigned_factories=factories
        )

    for user_id, attributes in DEMO_ATTRIBUTES.items():
        for name, value in attributes.items():
            users.set_attribute(user_id, name, value)

    for resource, record_id, created_by, owner_id, factory_id, tenant_id in DEMO_RECORDS:
        users.register_record(resource, record_id, created_by, owner_id, factory_id, tenant_id)

    store = PolicyStore(session_factory, autoload=False)
    store.seed_defaults()

    # Auditors may read case summaries but never the worker's identity
    store.save_field_permissions('auditor', 'case', {
        'summary': ['read'],
        'status': ['read'],
        'complainant': [],
    })

    return {
        'users': len(DEMO_USERS),
        'records': len(DEMO_RECORDS),
        'roles': len(store.role_hierarchy),
        'attribute_policies': len(store.attribute_policies),
    }


if __name__ == "__main__":
    load_demo_data()
