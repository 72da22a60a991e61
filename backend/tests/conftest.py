"""
Pytest fixtures for autoshop backend tests.

Provides test database setup, branch/customer/catalog fixtures, principals,
and a stub identity provider for API tests.
"""

import pytest

from autoshop import create_app
from autoshop.extensions import db
from autoshop.models import (
    Branch,
    Customer,
    Vehicle,
    CatalogItem,
    PricingRule,
    UserProfile,
    UserRoleAssignment,
    UserBranchAssignment,
)
from autoshop.services.authorization_service import Principal, Role
from autoshop.services.identity_service import IdentityProvider


class StubIdentityProvider(IdentityProvider):
    """Maps bearer tokens to identities without any network call."""

    def __init__(self):
        self.tokens = {}

    def register(self, token: str, user_id: str, email: str | None = None) -> None:
        self.tokens[token] = {"id": user_id, "email": email}

    def verify_token(self, token: str):
        return self.tokens.get(token)


@pytest.fixture(scope='session')
def identity_provider():
    return StubIdentityProvider()


@pytest.fixture(scope='session')
def app(identity_provider):
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'AUDIT_ENABLED': True,
        },
        identity_provider=identity_provider,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, identity_provider):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        identity_provider.tokens.clear()
        app.config['AUDIT_ENABLED'] = True

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# BRANCHES / CUSTOMERS
# =============================================================================

@pytest.fixture(scope='function')
def branch_a(db_session):
    branch = Branch(name="Branch A - Downtown", code="A")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session):
    branch = Branch(name="Branch B - Uptown", code="B")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def customer_a(db_session, branch_a):
    customer = Customer(full_name="Juan Dela Cruz", contact_number="09170000001", branch_id=branch_a.id)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def vehicle_a(db_session, customer_a, branch_a):
    vehicle = Vehicle(
        plate_number="ABC-1234",
        vehicle_type="sedan",
        model="Corolla",
        customer_id=customer_a.id,
        branch_id=branch_a.id,
    )
    db_session.add(vehicle)
    db_session.commit()
    return vehicle


@pytest.fixture(scope='function')
def other_customer_vehicle(db_session, branch_a):
    customer = Customer(full_name="Maria Santos", branch_id=branch_a.id)
    db_session.add(customer)
    db_session.commit()
    vehicle = Vehicle(plate_number="XYZ-9999", model="Civic", customer_id=customer.id, branch_id=branch_a.id)
    db_session.add(vehicle)
    db_session.commit()
    return vehicle


# =============================================================================
# CATALOG / PRICING
# =============================================================================

def make_item(db_session, *, name="Oil Change", base_price_cents=100, branch_id=None, is_global=False, item_type="service"):
    item = CatalogItem(
        name=name,
        type=item_type,
        base_price_cents=base_price_cents,
        branch_id=None if is_global else branch_id,
        is_global=is_global,
    )
    db_session.add(item)
    db_session.commit()
    return item


def make_rule(db_session, *, item, branch, pricing_type, price_cents, status="active"):
    rule = PricingRule(
        catalog_item_id=item.id,
        branch_id=branch.id,
        pricing_type=pricing_type,
        price_cents=price_cents,
        status=status,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


@pytest.fixture(scope='function')
def priced_item(db_session, branch_a):
    """base 100 + labor 50 + packaging 20 at branch A."""
    item = make_item(db_session, name="Brake Service", base_price_cents=100, branch_id=branch_a.id)
    make_rule(db_session, item=item, branch=branch_a, pricing_type="labor", price_cents=50)
    make_rule(db_session, item=item, branch=branch_a, pricing_type="packaging", price_cents=20)
    return item


@pytest.fixture(scope='function')
def global_item(db_session):
    return make_item(db_session, name="Tire Rotation", base_price_cents=300, is_global=True)


# =============================================================================
# PRINCIPALS
# =============================================================================

def principal(user_id: str, *roles: Role, branches=()) -> Principal:
    return Principal(id=user_id, roles=frozenset(roles), branch_ids=frozenset(b.id for b in branches))


@pytest.fixture(scope='function')
def hm(db_session):
    return principal("user-hm", Role.HM)


@pytest.fixture(scope='function')
def poc_a(branch_a):
    return principal("user-poc-a", Role.POC, branches=[branch_a])


@pytest.fixture(scope='function')
def receptionist_a(branch_a):
    return principal("user-r-a", Role.R, branches=[branch_a])


@pytest.fixture(scope='function')
def technician_a(branch_a):
    return principal("user-t-a", Role.T, branches=[branch_a])


@pytest.fixture(scope='function')
def receptionist_b(branch_b):
    return principal("user-r-b", Role.R, branches=[branch_b])


# =============================================================================
# API AUTH
# =============================================================================

def create_user(db_session, identity_provider, user_id: str, roles, branches=(), *, is_active=True) -> dict:
    """Persist profile + assignments and register a token; returns auth headers."""
    db_session.add(UserProfile(id=user_id, email=f"{user_id}@autoshop.test", full_name=user_id, is_active=is_active))
    for role in roles:
        db_session.add(UserRoleAssignment(user_id=user_id, role=role))
    for branch in branches:
        db_session.add(UserBranchAssignment(user_id=user_id, branch_id=branch.id))
    db_session.commit()

    token = f"token-{user_id}"
    identity_provider.register(token, user_id, f"{user_id}@autoshop.test")
    return auth_headers(token)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def receptionist_headers(db_session, identity_provider, branch_a):
    return create_user(db_session, identity_provider, "api-r-a", ["R"], [branch_a])


@pytest.fixture(scope='function')
def technician_headers(db_session, identity_provider, branch_a):
    return create_user(db_session, identity_provider, "api-t-a", ["T"], [branch_a])


@pytest.fixture(scope='function')
def branch_b_headers(db_session, identity_provider, branch_b):
    return create_user(db_session, identity_provider, "api-r-b", ["R"], [branch_b])


@pytest.fixture(scope='function')
def hm_headers(db_session, identity_provider):
    return create_user(db_session, identity_provider, "api-hm", ["HM"])
