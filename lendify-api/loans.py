import math
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from errors import InvalidInput, NotFound, RuleViolation, StoreError
from models import LoanRecord, LoanStatus
from notices import Notice

logger = logging.getLogger(__name__)

DEFAULT_LOAN_LIMIT_DAYS = 7
SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

# --------------------------------------------------------------------------
# Rules (pure)
# --------------------------------------------------------------------------
def elapsed_days(loan: LoanRecord, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    seconds = abs((now - loan.borrow_date).total_seconds())
    return math.ceil(seconds / SECONDS_PER_DAY)


def loan_limit(loan: LoanRecord) -> int:
    return loan.expected_duration or DEFAULT_LOAN_LIMIT_DAYS


def is_overdue(loan: LoanRecord, now: Optional[datetime] = None) -> bool:
    if not loan.is_active:
        return False
    return elapsed_days(loan, now) > loan_limit(loan)


def overdue_loans(loans: Iterable[LoanRecord], now: Optional[datetime] = None) -> List[LoanRecord]:
    now = now or utcnow()
    return [l for l in loans if is_overdue(l, now)]


def duration_days(start: datetime, end: Optional[datetime] = None,
                  today: Optional[date] = None) -> int:
    """Whole calendar days between start and end (or today); never below 1."""
    end_day = end.date() if end else (today or utcnow().date())
    return max(1, abs((end_day - start.date()).days))


def format_duration(start: datetime, end: Optional[datetime] = None,
                    today: Optional[date] = None) -> str:
    return f"{duration_days(start, end, today)} Hari"


def expected_return_date(loan: LoanRecord) -> Optional[date]:
    if not loan.expected_duration:
        return None
    return (loan.borrow_date + timedelta(days=loan.expected_duration)).date()


def describe_loan(loan: LoanRecord, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    due = expected_return_date(loan)
    return {
        **loan.model_dump(mode="json"),
        "duration": format_duration(loan.borrow_date, loan.return_date, now.date()),
        "expected_return_date": due.isoformat() if due else None,
        "overdue": is_overdue(loan, now),
    }

# --------------------------------------------------------------------------
# Actions
# --------------------------------------------------------------------------
def borrow_item(state, item_id: int, borrower_id: Optional[int], purpose: str,
                duration: Optional[int], now: Optional[datetime] = None) -> Tuple[int, Notice]:
    purpose = (purpose or "").strip()
    if not borrower_id:
        raise InvalidInput("Peminjam harus dipilih.")
    if not purpose:
        raise InvalidInput("Keterangan / keperluan harus diisi.")
    if duration is None or duration < 1:
        raise InvalidInput("Rencana durasi minimal 1 hari.")
    now = now or utcnow()

    with state.mutation() as snapshot:
        item = snapshot.item(item_id)
        if item is None:
            raise NotFound("Barang tidak ditemukan.")
        if item.quantity <= 0:
            raise RuleViolation(f"Stok {item.name} habis, tidak dapat dipinjam.")
        borrower = snapshot.user(borrower_id)

        try:
            loan_id = state.store.loans.insert({
                "item_id": item.id,
                "item_name": item.name,
                "item_image": item.image_url,
                "borrower_id": borrower_id,
                "borrower_name": borrower.name if borrower else "Unknown",
                "borrow_date": now,
                "status": LoanStatus.borrowed,
                "purpose": purpose,
                "expected_duration": duration,
            })[0]
        except StoreError as e:
            raise e.relabel("Gagal mencatat peminjaman.") from e

        try:
            state.store.items.update(item.id, {"quantity": item.quantity - 1})
        except StoreError:
            logger.warning("loan %s recorded but stock of item %s not decremented", loan_id, item.id)
            notice = state.notices.post("Peminjaman tercatat, tapi stok gagal update.", "warning")
        else:
            notice = state.notices.post("Peminjaman berhasil dicatat.", "success")
    return loan_id, notice


def return_loan(state, loan_id: int, now: Optional[datetime] = None) -> Notice:
    now = now or utcnow()

    with state.mutation() as snapshot:
        loan = snapshot.loan(loan_id)
        if loan is None:
            raise NotFound("Data peminjaman tidak ditemukan.")
        if not loan.is_active:
            raise RuleViolation("Barang ini sudah dikembalikan.")

        try:
            state.store.loans.update(loan.id, {
                "status": LoanStatus.returned,
                "return_date": now,
            })
        except StoreError as e:
            raise e.relabel("Gagal mencatat pengembalian.") from e

        # the item may have been deleted since; then there is no stock to restore
        item = snapshot.item(loan.item_id)
        if item is not None:
            try:
                state.store.items.update(item.id, {"quantity": item.quantity + 1})
            except StoreError:
                logger.warning("loan %s returned but stock of item %s not incremented", loan.id, item.id)
                return state.notices.post("Barang dikembalikan, tapi stok gagal update.", "warning")
        return state.notices.post("Barang berhasil dikembalikan.", "success")
