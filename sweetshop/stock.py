"""
Stock transactions: purchase and restock.

Every quantity change goes through `StockTransactionManager`. Each call is
one atomic read-validate-write cycle on a single sweet, run under that
sweet's exclusive lock, so concurrent calls on the same sweet behave as if
they had run one after another and the quantity never goes negative.
"""
import logging
from typing import Optional

from . import config, models
from .errors import InsufficientStock, InvalidArgument
from .store import SweetStore

logger = logging.getLogger(__name__)

_DEFAULT = object()


def validate_quantity(quantity) -> int:
    """
    Check that a requested stock change is a positive integer.

    Args:
        quantity: Requested number of units

    Returns:
        The quantity, unchanged

    Raises:
        InvalidArgument: if quantity is not an int, is a bool, is not positive,
            or does not fit the quantity column
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not 0 < quantity <= models.MAX_QUANTITY:
        raise InvalidArgument("Invalid quantity")
    return quantity


class StockTransactionManager:
    """
    Runs purchases and restocks as atomic units of work.

    No call is retried internally: insufficient stock, a missing sweet and a
    lock timeout are final outcomes for that call.

    Args:
        store: Storage the transactions run against
        lock_timeout: Default seconds to wait for a sweet's lock; None waits indefinitely
    """

    def __init__(self, store: SweetStore, lock_timeout: Optional[float] = _DEFAULT) -> None:
        self.store = store
        self.lock_timeout = config.STOCK_LOCK_TIMEOUT if lock_timeout is _DEFAULT else lock_timeout

    def purchase(self, sweet_id: int, quantity: int, timeout: Optional[float] = _DEFAULT) -> models.Sweet:
        """
        Remove `quantity` units from a sweet's stock.

        Args:
            sweet_id: ID of the sweet to purchase
            quantity: Number of units, a positive integer
            timeout: Seconds to wait for the sweet's lock (defaults to the manager's)

        Returns:
            The sweet as committed after the purchase

        Raises:
            InvalidArgument: if quantity is not a positive integer (no lock is taken)
            SweetNotFound: if the sweet does not exist
            InsufficientStock: if fewer than `quantity` units are in stock
            LockTimeout: if the lock was not obtained in time
            StorageError: if the database failed; nothing was changed
        """
        validate_quantity(quantity)
        return self._change(sweet_id, -quantity, timeout)

    def restock(self, sweet_id: int, quantity: int, timeout: Optional[float] = _DEFAULT) -> models.Sweet:
        """
        Add `quantity` units to a sweet's stock. There is no upper bound.

        Raises the same errors as `purchase`, except InsufficientStock.
        """
        validate_quantity(quantity)
        return self._change(sweet_id, quantity, timeout)

    def _change(self, sweet_id: int, delta: int, timeout) -> models.Sweet:
        if timeout is _DEFAULT:
            timeout = self.lock_timeout
        action = "purchase" if delta < 0 else "restock"

        try:
            with self.store.transaction() as tx:
                locked = tx.get_for_update(sweet_id, timeout=timeout)
                if delta < 0 and locked.quantity < -delta:
                    raise InsufficientStock(sweet_id, locked.quantity, -delta)
                before = locked.quantity
                sweet = tx.apply_delta(locked, delta)
        except InsufficientStock as e:
            logger.info(f"Rejected {action} of {-delta} units of sweet {sweet_id}: only {e.available} in stock")
            raise

        logger.info(f"Committed {action} on sweet {sweet_id}: quantity {before} -> {sweet.quantity}")
        return sweet
