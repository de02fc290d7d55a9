"""Units of work over a SQLAlchemy session."""

import logging
from contextlib import contextmanager
from enum import Enum as PyEnum
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConcurrentModificationException, TransactionStateException
from app.repositories.unique import duplicate_key_from_integrity_error, handle_unique_field_error

if TYPE_CHECKING:
    from app.repositories.options import RepositoryOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSACTION_KEY = "app.transaction"


class TransactionState(str, PyEnum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ABORTED = "aborted"


class DatabaseTransaction:
    """Handle for one atomic unit of work on a database session"""

    def __init__(self, db: Session):
        self.db = db
        self.state = TransactionState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state == TransactionState.ACTIVE

    def __repr__(self) -> str:
        return f"<DatabaseTransaction(state={self.state.value})>"


class TransactionManager:
    """
    Opens, commits and aborts units of work.

    With transactions disabled ``begin`` returns None and ``commit`` /
    ``abort`` accept None as a no-op, so callers keep a single code path.
    In that mode every write is committed on its own by ``run_with_session``
    and a failure part-way through an operation leaves earlier writes in
    place.
    """

    def __init__(self, transactions_enabled: bool = True):
        self.transactions_enabled = transactions_enabled
        if not transactions_enabled:
            logger.warning(
                "Database transactions are disabled: multi-write operations are not atomic"
            )

    def begin(self, db: Session) -> DatabaseTransaction | None:
        """Start a unit of work on ``db``, or return None when transactions are disabled"""
        if not self.transactions_enabled:
            return None

        current = db.info.get(_TRANSACTION_KEY)
        if current is not None and current.is_active:
            raise TransactionStateException("A transaction is already open on this session")

        if not db.in_transaction():
            db.begin()

        transaction = DatabaseTransaction(db)
        db.info[_TRANSACTION_KEY] = transaction
        logger.debug("Transaction started")
        return transaction

    def commit(self, transaction: DatabaseTransaction | None) -> None:
        if transaction is None:
            return

        self._require_active(transaction, "commit")
        transaction.db.commit()
        transaction.state = TransactionState.COMMITTED
        transaction.db.info.pop(_TRANSACTION_KEY, None)
        logger.debug("Transaction committed")

    def abort(self, transaction: DatabaseTransaction | None) -> None:
        if transaction is None:
            if not self.transactions_enabled:
                logger.warning("Operation failed without a transaction; completed writes are kept")
            return

        self._require_active(transaction, "abort")
        transaction.db.rollback()
        transaction.state = TransactionState.ABORTED
        transaction.db.info.pop(_TRANSACTION_KEY, None)
        logger.warning("Transaction aborted")

    @contextmanager
    def unit_of_work(
        self,
        options: "RepositoryOptions",
        entity_name: str | None = None,
        unique_fields: Iterable[str] = (),
    ) -> Iterator["RepositoryOptions"]:
        """
        Run a block of repository calls as one unit of work.

        Yields a copy of ``options`` bound to the new transaction. On success
        the transaction is committed. On any error, cancellation included, it
        is aborted; duplicate-key failures are rewritten into validation
        errors for ``entity_name``, and the error is re-raised.

            with transactions.unit_of_work(options, "customer") as scoped:
                CustomerRepository(scoped).create(data)
        """
        transaction = self.begin(options.db)
        try:
            yield options.with_session(transaction)
            self.commit(transaction)
        except BaseException as error:
            # Cancellation (KeyboardInterrupt, CancelledError) aborts too
            if transaction is None or transaction.is_active:
                self.abort(transaction)
            if entity_name and isinstance(error, Exception):
                handle_unique_field_error(error, options.language, entity_name, unique_fields)
            raise

    @staticmethod
    def _require_active(transaction: DatabaseTransaction, action: str) -> None:
        if not transaction.is_active:
            raise TransactionStateException(
                f"Cannot {action} a transaction that is already {transaction.state.value}"
            )


def run_with_session(operation: Callable[[Session], T], options: "RepositoryOptions") -> T:
    """
    Issue a write so that it joins the open unit of work, if any.

    ``operation`` receives the database session. Its changes are flushed
    immediately; without an open transaction they are also committed.
    Unique violations surface as ``DuplicateKeyException`` and writes from a
    stale copy of a versioned row as ``ConcurrentModificationException``.
    """
    db = options.db
    transaction = options.session

    if transaction is not None and not transaction.is_active:
        raise TransactionStateException(
            f"Cannot write through a transaction that is already {transaction.state.value}"
        )
    if transaction is None:
        open_transaction = db.info.get(_TRANSACTION_KEY)
        if open_transaction is not None and open_transaction.is_active:
            raise TransactionStateException("Write issued outside the transaction open on this session")

    try:
        result = operation(db)
        db.flush()
        if transaction is None:
            db.commit()
        return result
    except Exception as error:
        if transaction is None:
            db.rollback()
        if isinstance(error, IntegrityError):
            duplicate = duplicate_key_from_integrity_error(error)
            if duplicate is not None:
                raise duplicate from error
        if isinstance(error, StaleDataError):
            raise ConcurrentModificationException(str(error)) from error
        raise
