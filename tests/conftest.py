"""
Shared fixtures for the Vuelve test suite.

The `app` fixture keeps one application context pushed for the whole test, so
tests and the code under test share the same database session.
"""
from datetime import datetime

import pytest

from app import create_app
from app.extensions import db
from app.models import Customer, Membership, MembershipState, Program, Tenant

# Plaza de Armas, Santiago
SANTIAGO_LAT = -33.4489
SANTIAGO_LNG = -70.6693

CUSTOMER_PHONE = '+56911112222'


@pytest.fixture
def app():
    """Application with an in-memory database."""
    app = create_app('testing')
    ctx = app.app_context()
    ctx.push()
    db.create_all()

    yield app

    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sample_tenant(app):
    tenant = Tenant(name='Café Central', slug='cafe-central', status='active')
    db.session.add(tenant)
    db.session.commit()
    return tenant


@pytest.fixture
def geofenced_tenant(app):
    tenant = Tenant(
        name='Panadería Plaza',
        slug='panaderia-plaza',
        status='active',
        lat=SANTIAGO_LAT,
        lng=SANTIAGO_LNG,
    )
    db.session.add(tenant)
    db.session.commit()
    return tenant


@pytest.fixture
def sample_customer(app, sample_tenant):
    customer = Customer(tenant_id=sample_tenant.id, phone=CUSTOMER_PHONE, name='Ana')
    db.session.add(customer)
    db.session.commit()
    return customer


@pytest.fixture
def make_program(app, sample_tenant):
    """Factory: replace the tenant's active program."""

    def _make(program_type='sellos', goal=10, config=None, reward_description='Café gratis', tenant_id=None):
        tenant_id = tenant_id or sample_tenant.id
        Program.query.filter_by(tenant_id=tenant_id, is_active=True).update({'is_active': False})
        program = Program(
            tenant_id=tenant_id,
            name=f'Programa {program_type}',
            program_type=program_type,
            goal=goal,
            reward_description=reward_description,
            config=config or {},
            is_active=True,
        )
        db.session.add(program)
        db.session.commit()
        return program

    return _make


@pytest.fixture
def make_membership(app, sample_customer):
    """Factory: membership wallet for the sample customer."""

    def _make(program, state=MembershipState.ACTIVE, **fields):
        membership = Membership(
            customer_id=sample_customer.id,
            tenant_id=program.tenant_id,
            program_id=program.id,
            state=state.value,
            **fields
        )
        db.session.add(membership)
        db.session.commit()
        return membership

    return _make


@pytest.fixture
def visit_day():
    """A fixed mid-day timestamp so visits never straddle midnight."""
    return datetime(2026, 3, 10, 13, 0, 0)
