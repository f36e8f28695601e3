"""
Catalog operations for the Sweets service.

Create, read, search, update and delete sweets. Quantity is only set here
when a sweet is created; afterwards it belongs to the stock transactions.
"""
from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Dict, List, Optional

from . import models, schemas
from .errors import InvalidArgument, NothingToUpdate
from .store import SweetStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "category", "price")
REQUIRED_FIELDS = ("name", "category", "price", "quantity")


def _validate_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument("Name must be a non-empty string")
    return value


def _validate_category(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument("Category must be a non-empty string")
    return value


def _validate_price(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidArgument("Price must be a number")
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidArgument("Price must be a number")
    if not price.is_finite() or price < 0:
        raise InvalidArgument("Price must be a non-negative number")
    return price


def _validate_initial_quantity(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= models.MAX_QUANTITY:
        raise InvalidArgument("Quantity must be a non-negative integer")
    return value


_VALIDATORS = {
    "name": _validate_name,
    "category": _validate_category,
    "price": _validate_price,
}


class CatalogService:
    """
    Catalog CRUD and search over a `SweetStore`.

    Args:
        store: Storage shared with the stock transactions
    """

    def __init__(self, store: SweetStore) -> None:
        self.store = store

    def create(self, fields: Dict[str, Any]) -> models.Sweet:
        """
        Create a new sweet.

        Args:
            fields: name, category, price and initial quantity, all required

        Returns:
            Created Sweet with its assigned id

        Raises:
            InvalidArgument: if a field is missing or out of range
        """
        missing = [key for key in REQUIRED_FIELDS if fields.get(key) is None]
        if missing:
            raise InvalidArgument(f"Missing fields: {', '.join(missing)}")

        sweet = self.store.create(
            name=_validate_name(fields["name"]),
            category=_validate_category(fields["category"]),
            price=_validate_price(fields["price"]),
            quantity=_validate_initial_quantity(fields["quantity"]),
        )
        logger.info(f"Created sweet {sweet.id} ({sweet.name!r}) with quantity {sweet.quantity}")
        return sweet

    def get(self, sweet_id: int) -> models.Sweet:
        return self.store.get(sweet_id)

    def list(self) -> List[models.Sweet]:
        return self.store.list()

    def search(self, filters: Optional[schemas.SweetSearch] = None) -> List[models.Sweet]:
        """
        Retrieve sweets matching all supplied filters, ordered by id.

        An inverted price range matches nothing.
        """
        if filters is None:
            filters = schemas.SweetSearch()
        if (
            filters.min_price is not None
            and filters.max_price is not None
            and filters.min_price > filters.max_price
        ):
            return []
        return self.store.search(filters)

    def update(self, sweet_id: int, fields: Dict[str, Any], timeout: Optional[float] = None) -> models.Sweet:
        """
        Update the supplied metadata fields of a sweet.

        Args:
            sweet_id: ID of the sweet to update
            fields: Any of name, category, price

        Returns:
            Updated Sweet

        Raises:
            NothingToUpdate: if no fields were supplied
            InvalidArgument: if a field is unknown or a value is out of range
            SweetNotFound: if the sweet does not exist
        """
        if not fields:
            raise NothingToUpdate()
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise InvalidArgument(f"Fields cannot be updated: {', '.join(unknown)}")
        values = {key: _VALIDATORS[key](value) for key, value in fields.items()}

        with self.store.transaction() as tx:
            locked = tx.get_for_update(sweet_id, timeout=timeout)
            sweet = tx.update_fields(locked, values)
        logger.info(f"Updated sweet {sweet_id}: {', '.join(sorted(values))}")
        return sweet

    def delete(self, sweet_id: int, timeout: Optional[float] = None) -> None:
        """
        Delete a sweet.

        Waits for any in-flight stock transaction on the same sweet to finish.

        Raises:
            SweetNotFound: if the sweet does not exist
            LockTimeout: if the sweet stayed locked longer than `timeout`
        """
        with self.store.transaction() as tx:
            locked = tx.get_for_update(sweet_id, timeout=timeout)
            tx.delete(locked)
        logger.info(f"Deleted sweet {sweet_id}")
