from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from app.config import settings
from app.models.base import Base
from app.repositories.options import RepositoryOptions
from app.repositories.session import TransactionManager

# Create SQLAlchemy engine
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    echo=settings.DEBUG,  # Log SQL queries in debug mode
    # SQLite-specific settings
    connect_args={"check_same_thread": False} if "sqlite" in settings.DATABASE_URL else {},
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# The only place the transactions flag is read
transaction_manager = TransactionManager(transactions_enabled=settings.DATABASE_TRANSACTIONS)


def init_db(bind=None) -> None:
    """Create every table known to the models (development and tests; production uses Alembic)."""
    from app.models import customer, order, product, tenant, user  # noqa: F401  register mappers
    from app.models.settings import Settings  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Session:
    """
    FastAPI dependency for database sessions.

    Yields a database session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def repository_options(db: Session, language: str | None = None) -> RepositoryOptions:
    """
    Options for a request's repository calls, bound to the configured transaction mode.

    The caller scopes them further with the authenticated user and tenant.
    """
    return RepositoryOptions(
        db=db,
        transactions=transaction_manager,
        language=language or settings.DEFAULT_LANGUAGE,
    )
