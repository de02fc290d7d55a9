import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import get_db, init_db
from app.models.base import Base
# Import all model classes to ensure they're registered with SQLAlchemy
from app.models.customer import Customer  # noqa: F401
from app.models.order import Order  # noqa: F401
from app.models.product import Product  # noqa: F401
from app.models.role import TenantRole
from app.models.settings import Settings  # noqa: F401
from app.models.tenant import Tenant
from app.models.tenant_user import TenantUser, TenantUserStatus
from app.models.user import User
from app.repositories.options import RepositoryOptions
from app.repositories.session import TransactionManager
# Import FastAPI app AFTER model imports
from app.main import app

# Test database (SQLite in-memory for speed)
# Use StaticPool to ensure all connections share the same in-memory database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingAuditSink:
    """Audit sink keeping entries in memory"""

    def __init__(self):
        self.entries = []

    def log(self, entity_name, entity_id, action, values):
        self.entries.append((entity_name, entity_id, action, dict(values or {})))

    def actions_for(self, entity_name):
        return [entry[2] for entry in self.entries if entry[0] == entity_name]


@pytest.fixture(scope="function")
def db_session():
    """Create fresh database for each test"""
    init_db(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with test database"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def make_user(db_session):
    """Factory inserting a user with the given memberships"""

    def _make_user(email, memberships=(), **profile):
        user = User(
            email=email,
            tenants=[membership.to_document() for membership in memberships],
            **profile,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_tenant(db_session):
    """Factory inserting a tenant"""

    def _make_tenant(name="Acme", url=None):
        tenant = Tenant(name=name, url=url or name.lower().replace(" ", "-"))
        db_session.add(tenant)
        db_session.commit()
        return tenant

    return _make_tenant


@pytest.fixture
def tenant(make_tenant):
    """Tenant for most tests"""
    return make_tenant("Acme", "acme")


@pytest.fixture
def owner(make_user, tenant):
    """Active owner of ``tenant``"""
    return make_user(
        "owner@example.com",
        [TenantUser(tenant_id=tenant.id, status=TenantUserStatus.ACTIVE, roles=[TenantRole.OWNER.value])],
        first_name="Olivia",
        last_name="Owner",
        full_name="Olivia Owner",
    )


@pytest.fixture
def make_options(db_session, audit_sink):
    """Factory for repository options in either transaction mode"""

    def _make_options(current_user=None, current_tenant=None, transactions_enabled=True):
        return RepositoryOptions(
            db=db_session,
            transactions=TransactionManager(transactions_enabled=transactions_enabled),
            current_user=current_user,
            current_tenant=current_tenant,
            audit=audit_sink,
        )

    return _make_options


@pytest.fixture
def options(make_options, owner, tenant):
    """Options of the owner acting in ``tenant`` with transactions enabled"""
    return make_options(owner, tenant)


@pytest.fixture(params=[True, False], ids=["transactions", "autocommit"])
def any_options(request, make_options, owner, tenant):
    """Options of the owner acting in ``tenant``, in both transaction modes"""
    return make_options(owner, tenant, transactions_enabled=request.param)
