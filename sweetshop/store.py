"""
Durable storage for sweets.

`SweetStore` owns every database access to the `sweets` table. Plain reads
and creation run in their own short session. Anything that must not
interleave with a concurrent change to the same sweet runs inside
`SweetStore.transaction()`, which hands out a `StoreTransaction`:

    with store.transaction() as tx:
        locked = tx.get_for_update(sweet_id)
        tx.apply_delta(locked, -3)

Locks taken by `get_for_update` are held until the transaction commits or
rolls back, and are released on every exit path.
"""
from contextlib import contextmanager
from decimal import Decimal
import logging
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import text, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import InsufficientStock, InvalidArgument, LockTimeout, StorageError, SweetNotFound
from .locks import ItemLocks, LockHandle

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for lock_not_available
_LOCK_NOT_AVAILABLE = "55P03"


def _is_lock_not_available(exc: OperationalError) -> bool:
    return getattr(exc.orig, "pgcode", None) == _LOCK_NOT_AVAILABLE


class LockedSweet:
    """
    A sweet read under its exclusive lock.

    Only valid inside the transaction that produced it; the lock goes away
    when that transaction ends.
    """

    def __init__(self, sweet: models.Sweet, transaction: "StoreTransaction") -> None:
        self.sweet = sweet
        self.transaction = transaction

    @property
    def id(self) -> int:
        return self.sweet.id

    @property
    def quantity(self) -> int:
        return self.sweet.quantity


class StoreTransaction:
    """One unit of work. Obtain through `SweetStore.transaction()`."""

    def __init__(self, session: Session, locks: ItemLocks) -> None:
        self.session = session
        self._locks = locks
        self._held: Dict[int, LockHandle] = {}
        self.active = True

    def get_for_update(self, sweet_id: int, timeout: Optional[float] = None) -> LockedSweet:
        """
        Lock a sweet for the rest of this transaction and read its committed state.

        Blocks while another transaction holds the same sweet.

        Args:
            sweet_id: ID of the sweet to lock
            timeout: Seconds to wait for the lock; None waits indefinitely

        Returns:
            LockedSweet wrapping the current record

        Raises:
            LockTimeout: if the lock was not obtained in time
            SweetNotFound: if no sweet has this id
        """
        self._ensure_active()
        if sweet_id not in self._held:
            self._held[sweet_id] = self._locks.acquire(sweet_id, timeout)

        try:
            self._set_lock_timeout(timeout)
            sweet = (
                self.session.query(models.Sweet)
                .filter(models.Sweet.id == sweet_id)
                .with_for_update()
                .populate_existing()
                .one_or_none()
            )
        except OperationalError as e:
            if _is_lock_not_available(e):
                raise LockTimeout(f"Row lock for item {sweet_id} not available within timeout={timeout}s") from e
            raise

        if sweet is None:
            raise SweetNotFound(sweet_id)
        return LockedSweet(sweet, self)

    def apply_delta(self, locked: LockedSweet, delta: int) -> models.Sweet:
        """
        Write `quantity = quantity + delta` for a locked sweet.

        The write is conditional on the result staying non-negative, so the
        quantity cannot go below zero even where row locks are unavailable.

        Raises:
            InsufficientStock: if the condition did not hold
            InvalidArgument: if the result would not fit the quantity column
        """
        self._check_owned(locked)
        if locked.quantity + delta > models.MAX_QUANTITY:
            raise InvalidArgument(f"Quantity of sweet {locked.id} would exceed {models.MAX_QUANTITY}")
        stmt = (
            update(models.Sweet)
            .where(models.Sweet.id == locked.id, models.Sweet.quantity + delta >= 0)
            .values(quantity=models.Sweet.quantity + delta)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            raise InsufficientStock(locked.id, locked.quantity, -delta)
        self.session.refresh(locked.sweet)
        return locked.sweet

    def update_fields(self, locked: LockedSweet, fields: Dict[str, Any]) -> models.Sweet:
        """Overwrite metadata columns of a locked sweet. Never touches quantity."""
        self._check_owned(locked)
        for key, value in fields.items():
            setattr(locked.sweet, key, value)
        self.session.flush()
        return locked.sweet

    def delete(self, locked: LockedSweet) -> None:
        self._check_owned(locked)
        self.session.delete(locked.sweet)
        self.session.flush()

    def release_locks(self) -> None:
        self.active = False
        for handle in self._held.values():
            handle.release()
        self._held.clear()

    def _set_lock_timeout(self, timeout: Optional[float]) -> None:
        # Bounds the wait on row locks held by other processes
        if timeout is None or self.session.get_bind().dialect.name != "postgresql":
            return
        millis = max(int(timeout * 1000), 1)
        self.session.execute(text(f"SET LOCAL lock_timeout = '{millis}ms'"))

    def _ensure_active(self) -> None:
        if not self.active:
            raise RuntimeError("Transaction is already finished")

    def _check_owned(self, locked: LockedSweet) -> None:
        self._ensure_active()
        if locked.transaction is not self or locked.id not in self._held:
            raise RuntimeError(f"Sweet {locked.id} is not locked by this transaction")


class SweetStore:
    """
    Storage for sweets over an injected session factory.

    Args:
        session_factory: Callable returning a new SQLAlchemy Session
        locks: Lock registry shared by every transaction on this store
    """

    def __init__(self, session_factory, locks: Optional[ItemLocks] = None) -> None:
        self._session_factory = session_factory
        self.locks = locks if locks is not None else ItemLocks()

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """
        Open a unit of work.

        Commits when the block exits normally and rolls back when it raises.
        Database failures surface as StorageError. Locks are released after
        the commit or rollback has completed.
        """
        session = self._session_factory()
        tx = StoreTransaction(session, self.locks)
        try:
            yield tx
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Storage failure, transaction rolled back: {e}")
            raise StorageError("Storage failure") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            tx.release_locks()
            session.close()

    def get(self, sweet_id: int) -> models.Sweet:
        """
        Retrieve a single sweet by ID without locking.

        Raises:
            SweetNotFound: if no sweet has this id
        """
        with self._session() as db:
            sweet = db.query(models.Sweet).filter(models.Sweet.id == sweet_id).first()
        if sweet is None:
            raise SweetNotFound(sweet_id)
        return sweet

    def list(self) -> List[models.Sweet]:
        with self._session() as db:
            return db.query(models.Sweet).order_by(models.Sweet.id).all()

    def search(self, filters: schemas.SweetSearch) -> List[models.Sweet]:
        """
        Retrieve sweets matching every supplied filter, ordered by id.

        Args:
            filters: name (case-insensitive substring), category (exact),
                min_price and max_price (inclusive). Absent filters are ignored.
        """
        with self._session() as db:
            query = db.query(models.Sweet)
            if filters.name:
                query = query.filter(models.Sweet.name.icontains(filters.name, autoescape=True))
            if filters.category:
                query = query.filter(models.Sweet.category == filters.category)
            if filters.min_price is not None:
                query = query.filter(models.Sweet.price >= filters.min_price)
            if filters.max_price is not None:
                query = query.filter(models.Sweet.price <= filters.max_price)
            return query.order_by(models.Sweet.id).all()

    def create(self, name: str, category: str, price: Decimal, quantity: int) -> models.Sweet:
        sweet = models.Sweet(name=name, category=category, price=price, quantity=quantity)
        with self._session() as db:
            db.add(sweet)
            db.commit()
            db.refresh(sweet)
        return sweet

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Storage failure: {e}")
            raise StorageError("Storage failure") from e
        finally:
            db.close()
