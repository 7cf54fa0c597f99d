from datetime import timedelta

import pytest

import views
from conftest import NOW, add_loan
from errors import InvalidInput, NotFound
from models import Item


def item(id, name, **extra):
    return Item(id=id, name=name, **extra)


def test_filter_by_name_or_description_ignores_case(state):
    found = views.filter_items(state.snapshot.items, "MOUSE")
    assert [i.id for i in found] == [3]
    found = views.filter_items(state.snapshot.items, "dell")
    assert [i.id for i in found] == [2]


def test_filter_by_category(state):
    assert {i.id for i in views.filter_items(state.snapshot.items, "", 1)} == {1, 3}
    assert {i.id for i in views.filter_items(state.snapshot.items, None, "2")} == {2}
    assert len(views.filter_items(state.snapshot.items, "", "all")) == 3


def test_filter_rejects_bad_category(state):
    with pytest.raises(InvalidInput):
        views.filter_items(state.snapshot.items, "", "laptop")


def test_sort_is_case_insensitive_and_stable():
    items = [item(1, "apple"), item(2, "Banana"), item(3, "APPLE"), item(4, "banana")]
    assert [i.id for i in views.sort_items(items, "name", "asc")] == [1, 3, 2, 4]
    assert [i.id for i in views.sort_items(items, "name", "desc")] == [2, 4, 1, 3]


def test_sort_by_quantity_puts_missing_dates_last():
    items = [
        item(1, "a", quantity=5),
        item(2, "b", quantity=1),
        item(3, "c", quantity=3),
    ]
    assert [i.id for i in views.sort_items(items, "quantity", "asc")] == [2, 3, 1]
    dated = [item(1, "a"), item(2, "b", purchase_date="2023-01-01")]
    assert [i.id for i in views.sort_items(dated, "purchase_date", "asc")] == [2, 1]


@pytest.mark.parametrize("field, order", [("price", "asc"), ("name", "up")])
def test_sort_rejects_unknown_field_or_order(field, order):
    with pytest.raises(InvalidInput):
        views.sort_items([], field, order)


def test_popular_items_ranks_by_count_then_id(state, store):
    for _ in range(3):
        add_loan(store, 3, returned=True)
    add_loan(store, 2)
    add_loan(store, 1)
    state.refresh()

    popular = views.popular_items(state.snapshot)
    assert [(p["item_id"], p["count"]) for p in popular] == [(3, 3), (1, 1), (2, 1)]
    assert popular[0]["name"] == "Logitech MX Master 3"


def test_popular_items_skips_deleted_items_and_keeps_five(state, store):
    for i in range(7):
        store.items.add(name=f"Kabel {i}", category_id=3, quantity=1)
    for item_id in range(1, 11):
        add_loan(store, item_id)
    add_loan(store, 999)
    add_loan(store, 999)
    state.refresh()

    popular = views.popular_items(state.snapshot)
    assert len(popular) == 5
    assert all(p["item_id"] != 999 for p in popular)


def test_loans_last_7_days(state, store):
    add_loan(store, 1, days_ago=0)
    add_loan(store, 3, days_ago=0)
    add_loan(store, 3, days_ago=2)
    add_loan(store, 3, days_ago=10)
    state.refresh()

    trend = views.loans_last_7_days(state.snapshot.loans, NOW.date())
    assert len(trend) == 7
    assert trend[0]["date"] == (NOW - timedelta(days=6)).date().isoformat()
    assert trend[-1] == {"date": NOW.date().isoformat(), "count": 2}
    assert trend[-3]["count"] == 1
    assert sum(d["count"] for d in trend) == 3


def test_category_distribution(state):
    rows = views.category_distribution(state.snapshot)
    by_name = {r["name"]: r for r in rows}
    # categories without items are left out
    assert set(by_name) == {"Laptop", "Monitor"}
    assert by_name["Laptop"]["count"] == 2
    assert by_name["Laptop"]["percent"] == 67
    assert by_name["Monitor"]["percent"] == 33


def test_active_loan_distribution_counts_open_loans_only(state, store):
    add_loan(store, 1)
    add_loan(store, 3)
    add_loan(store, 2, returned=True)
    state.refresh()

    rows = views.active_loan_distribution(state.snapshot)
    assert [(r["name"], r["count"], r["share"]) for r in rows] == [("Laptop", 2, 1.0)]


def test_borrower_history(state, store):
    add_loan(store, 1, borrower_id=2)
    add_loan(store, 3, borrower_id=2, returned=True)
    add_loan(store, 3, borrower_id=1)
    state.refresh()

    history = views.borrower_history(state.snapshot, 2, NOW)
    assert history["unit_name"] == "Finance"
    assert [l["item_id"] for l in history["active"]] == [1]
    assert [l["item_id"] for l in history["returned"]] == [3]


def test_borrower_history_with_missing_unit(state, store):
    store.users.add(name="Tamu", unit_id=77)
    state.refresh()
    user = next(u for u in state.snapshot.users if u.name == "Tamu")
    assert views.borrower_history(state.snapshot, user.id, NOW)["unit_name"] == "Unknown Unit"


def test_item_history_is_newest_first(state, store):
    older = add_loan(store, 3, days_ago=5, returned=True)
    newer = add_loan(store, 3, days_ago=1)
    state.refresh()

    history = views.item_history(state.snapshot, 3, NOW)
    assert [l["id"] for l in history["loans"]] == [newer, older]
    with pytest.raises(NotFound):
        views.item_history(state.snapshot, 99, NOW)


def test_summary(state, store):
    add_loan(store, 1, days_ago=10, expected=None)
    add_loan(store, 3, days_ago=1)
    state.refresh()

    data = views.summary(state.snapshot, NOW)
    assert data["total_items"] == 3
    assert data["active_loans"] == 2
    assert data["overdue_loans"] == 1
    assert data["overdue"][0]["item_id"] == 1
    assert data["overdue"][0]["elapsed"] == "10 Hari"
    assert len(data["last_7_days"]) == 7
