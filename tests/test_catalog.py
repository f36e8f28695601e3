import threading
import time
from decimal import Decimal

import pytest

from sweetshop import schemas
from sweetshop.errors import InvalidArgument, LockTimeout, NothingToUpdate, SweetNotFound


def test_create_returns_record_with_id(catalog):
    sweet = catalog.create({"name": "Gumdrop", "category": "candy", "price": "1.25", "quantity": 40})
    assert sweet.id is not None
    assert sweet.name == "Gumdrop"
    assert sweet.price == Decimal("1.25")
    assert sweet.quantity == 40
    assert catalog.get(sweet.id).name == "Gumdrop"


@pytest.mark.parametrize(
    "fields",
    [
        {"category": "candy", "price": 1, "quantity": 1},
        {"name": "", "category": "candy", "price": 1, "quantity": 1},
        {"name": "   ", "category": "candy", "price": 1, "quantity": 1},
        {"name": "X", "price": 1, "quantity": 1},
        {"name": "X", "category": "candy", "quantity": 1},
        {"name": "X", "category": "candy", "price": -1, "quantity": 1},
        {"name": "X", "category": "candy", "price": "free", "quantity": 1},
        {"name": "X", "category": "candy", "price": 1, "quantity": -1},
        {"name": "X", "category": "candy", "price": 1, "quantity": 1.5},
        {"name": "X", "category": "candy", "price": 1},
    ],
)
def test_create_rejects_invalid_fields(catalog, fields):
    with pytest.raises(InvalidArgument):
        catalog.create(fields)
    assert catalog.list() == []


def test_create_allows_zero_price_and_quantity(catalog):
    sweet = catalog.create({"name": "Sample", "category": "free", "price": 0, "quantity": 0})
    assert sweet.price == Decimal("0")
    assert sweet.quantity == 0


def test_list_is_ordered_by_id(make_sweet, catalog):
    ids = [make_sweet(name=name).id for name in ("B", "A", "C")]
    assert [s.id for s in catalog.list()] == sorted(ids)


def test_search_matches_all_filters(make_sweet, catalog):
    cheap_candy = make_sweet(name="Jelly Bean", category="candy", price="1.00")
    make_sweet(name="Gold Bar", category="candy", price="9.00")
    make_sweet(name="Truffle", category="chocolate", price="3.00")
    mid_candy = make_sweet(name="Sherbet", category="candy", price="5.00")
    make_sweet(name="Mint", category="candy", price="0.50")

    found = catalog.search(schemas.SweetSearch(category="candy", min_price=Decimal("1"), max_price=Decimal("5")))
    assert [s.id for s in found] == [cheap_candy.id, mid_candy.id]


def test_search_name_is_case_insensitive_substring(make_sweet, catalog):
    make_sweet(name="Chocolate Fudge", category="chocolate")
    make_sweet(name="Vanilla Fudge", category="fudge")
    make_sweet(name="Toffee", category="candy")

    found = catalog.search(schemas.SweetSearch(name="FUDGE"))
    assert [s.name for s in found] == ["Chocolate Fudge", "Vanilla Fudge"]


def test_search_category_is_exact(make_sweet, catalog):
    make_sweet(name="A", category="candy")
    make_sweet(name="B", category="candy floss")
    assert [s.name for s in catalog.search(schemas.SweetSearch(category="candy"))] == ["A"]


def test_search_without_filters_returns_everything(make_sweet, catalog):
    make_sweet(name="A")
    make_sweet(name="B")
    assert len(catalog.search()) == 2
    assert len(catalog.search(schemas.SweetSearch())) == 2


def test_search_inverted_price_range_is_empty(make_sweet, catalog):
    make_sweet(price="3.00")
    assert catalog.search(schemas.SweetSearch(min_price=Decimal("5"), max_price=Decimal("1"))) == []


def test_update_applies_only_supplied_fields(make_sweet, catalog):
    sweet = make_sweet(name="Old", category="candy", price="2.00", quantity=8)
    updated = catalog.update(sweet.id, {"price": "2.75"})
    assert updated.price == Decimal("2.75")
    assert updated.name == "Old"
    assert updated.category == "candy"
    assert updated.quantity == 8


def test_update_without_fields(make_sweet, catalog):
    sweet = make_sweet(name="Same")
    with pytest.raises(NothingToUpdate):
        catalog.update(sweet.id, {})
    assert catalog.get(sweet.id).name == "Same"


def test_update_missing_sweet(catalog):
    with pytest.raises(SweetNotFound):
        catalog.update(77, {"name": "Ghost"})


@pytest.mark.parametrize(
    "fields",
    [{"quantity": 100}, {"name": ""}, {"name": None}, {"price": -3}, {"category": 5}, {"id": 9}],
)
def test_update_rejects_invalid_fields(make_sweet, catalog, fields):
    sweet = make_sweet(name="Keep", quantity=8)
    with pytest.raises(InvalidArgument):
        catalog.update(sweet.id, fields)
    current = catalog.get(sweet.id)
    assert current.name == "Keep"
    assert current.quantity == 8


def test_delete_removes_sweet(make_sweet, catalog):
    sweet = make_sweet()
    catalog.delete(sweet.id)
    with pytest.raises(SweetNotFound):
        catalog.get(sweet.id)


def test_delete_missing_sweet(catalog):
    with pytest.raises(SweetNotFound):
        catalog.delete(31)


def test_delete_waits_for_stock_transaction(make_sweet, catalog, store):
    sweet = make_sweet()
    handle = store.locks.acquire(sweet.id)
    done = threading.Event()

    def delete():
        catalog.delete(sweet.id)
        done.set()

    t = threading.Thread(target=delete)
    t.start()
    time.sleep(0.2)
    assert not done.is_set()
    assert catalog.get(sweet.id).id == sweet.id

    handle.release()
    t.join(timeout=5.0)
    assert done.is_set()
    with pytest.raises(SweetNotFound):
        catalog.get(sweet.id)


def test_delete_times_out_against_held_lock(make_sweet, catalog, store):
    sweet = make_sweet()
    with store.locks.hold(sweet.id):
        with pytest.raises(LockTimeout):
            catalog.delete(sweet.id, timeout=0.1)
    assert catalog.get(sweet.id).id == sweet.id


def test_purchase_after_delete_is_not_found(make_sweet, catalog, stock):
    sweet = make_sweet()
    catalog.delete(sweet.id)
    with pytest.raises(SweetNotFound):
        stock.purchase(sweet.id, 1)


@pytest.mark.parametrize("category", ["", "  "])
def test_create_rejects_empty_category(catalog, category):
    with pytest.raises(InvalidArgument):
        catalog.create({"name": "X", "category": category, "price": 1, "quantity": 1})
    assert catalog.list() == []


def test_update_rejects_empty_category(make_sweet, catalog):
    sweet = make_sweet(category="candy")
    with pytest.raises(InvalidArgument):
        catalog.update(sweet.id, {"category": ""})
    assert catalog.get(sweet.id).category == "candy"


def test_create_rejects_quantity_beyond_column_range(catalog):
    from sweetshop.models import MAX_QUANTITY

    with pytest.raises(InvalidArgument):
        catalog.create({"name": "X", "category": "candy", "price": 1, "quantity": MAX_QUANTITY + 1})


def test_update_times_out_against_held_lock(make_sweet, catalog, store):
    sweet = make_sweet(name="Keep")
    with store.locks.hold(sweet.id):
        with pytest.raises(LockTimeout):
            catalog.update(sweet.id, {"name": "Changed"}, timeout=0.1)
    assert catalog.get(sweet.id).name == "Keep"
