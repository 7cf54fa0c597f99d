from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from errors import InvalidInput, NotFound
from loans import describe_loan, format_duration, overdue_loans, utcnow
from models import Item, LoanRecord, Snapshot

SORT_FIELDS = ("name", "description", "purchase_date", "quantity", "category_id", "id")
POPULAR_LIMIT = 5
TREND_DAYS = 7

# --------------------------------------------------------------------------
# Items: filter / sort
# --------------------------------------------------------------------------
def filter_items(items: List[Item], search: Optional[str] = None,
                 category: Union[int, str, None] = "all") -> List[Item]:
    term = (search or "").lower()
    if category in (None, "", "all"):
        category_id = None
    else:
        try:
            category_id = int(category)
        except (TypeError, ValueError):
            raise InvalidInput(f"Kategori tidak valid: {category}")

    def matches(item: Item) -> bool:
        found = term in item.name.lower() or term in (item.description or "").lower()
        return found and (category_id is None or item.category_id == category_id)

    return [i for i in items if matches(i)]


def sort_items(items: List[Item], field: str = "name", order: str = "asc") -> List[Item]:
    if field not in SORT_FIELDS:
        raise InvalidInput(f"Kolom urutan tidak dikenal: {field}")
    if order not in ("asc", "desc"):
        raise InvalidInput(f"Arah urutan tidak dikenal: {order}")

    def key(item: Item):
        value = getattr(item, field)
        if isinstance(value, str):
            value = value.lower()
        # missing values sort last in ascending order
        return (value is None, value if value is not None else 0)

    # sorted() keeps ties in their original order in both directions
    return sorted(items, key=key, reverse=(order == "desc"))

# --------------------------------------------------------------------------
# Loans: popularity / trend
# --------------------------------------------------------------------------
def popular_items(snapshot: Snapshot, limit: int = POPULAR_LIMIT) -> List[Dict[str, Any]]:
    counts = Counter(l.item_id for l in snapshot.loans)
    ranked = []
    for item_id, count in counts.items():
        item = snapshot.item(item_id)
        if item is not None:
            ranked.append({"item_id": item_id, "name": item.name, "count": count})
    ranked.sort(key=lambda r: (-r["count"], r["item_id"]))
    return ranked[:limit]


def loans_last_7_days(loans: List[LoanRecord], today: Optional[date] = None) -> List[Dict[str, Any]]:
    today = today or utcnow().date()
    out = []
    for back in range(TREND_DAYS - 1, -1, -1):
        day = (today - timedelta(days=back)).isoformat()
        count = sum(1 for l in loans if l.borrow_date.isoformat().startswith(day))
        out.append({"date": day, "count": count})
    return out

# --------------------------------------------------------------------------
# Distributions
# --------------------------------------------------------------------------
def _shares(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    total = sum(r["count"] for r in rows)
    for r in rows:
        r["share"] = (r["count"] / total) if total else 0.0
        r["percent"] = round(r["share"] * 100)
    return rows


def category_distribution(snapshot: Snapshot) -> List[Dict[str, Any]]:
    per_category = Counter(i.category_id for i in snapshot.items)
    rows = [
        {"category_id": c.id, "name": c.name, "count": per_category[c.id]}
        for c in snapshot.categories
        if per_category[c.id] > 0
    ]
    return _shares(rows)


def active_loan_distribution(snapshot: Snapshot) -> List[Dict[str, Any]]:
    category_of = {i.id: i.category_id for i in snapshot.items}
    per_category = Counter(category_of.get(l.item_id) for l in snapshot.active_loans)
    rows = [
        {"category_id": c.id, "name": c.name, "count": per_category[c.id]}
        for c in snapshot.categories
        if per_category[c.id] > 0
    ]
    return _shares(rows)

# --------------------------------------------------------------------------
# Histories
# --------------------------------------------------------------------------
def borrower_history(snapshot: Snapshot, user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    user = snapshot.user(user_id)
    if user is None:
        raise NotFound("Peminjam tidak ditemukan.")
    now = now or utcnow()
    unit = snapshot.unit(user.unit_id)
    history = [l for l in snapshot.loans if l.borrower_id == user.id]
    return {
        "user": user.model_dump(),
        "unit_name": unit.name if unit else "Unknown Unit",
        "active": [describe_loan(l, now) for l in history if l.is_active],
        "returned": [describe_loan(l, now) for l in history if not l.is_active],
    }


def item_history(snapshot: Snapshot, item_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    item = snapshot.item(item_id)
    if item is None:
        raise NotFound("Barang tidak ditemukan.")
    now = now or utcnow()
    history = sorted(
        (l for l in snapshot.loans if l.item_id == item.id),
        key=lambda l: l.borrow_date,
        reverse=True,
    )
    return {
        "item": item.model_dump(mode="json"),
        "loans": [describe_loan(l, now) for l in history],
    }

# --------------------------------------------------------------------------
# Dashboard
# --------------------------------------------------------------------------
def summary(snapshot: Snapshot, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    active = snapshot.active_loans
    late = overdue_loans(active, now)
    return {
        "total_items": len(snapshot.items),
        "active_loans": len(active),
        "overdue_loans": len(late),
        "overdue": [
            {**describe_loan(l, now), "elapsed": format_duration(l.borrow_date, None, now.date())}
            for l in late
        ],
        "popular_items": popular_items(snapshot),
        "last_7_days": loans_last_7_days(snapshot.loans, now.date()),
        "by_category": category_distribution(snapshot),
        "active_by_category": active_loan_distribution(snapshot),
    }
