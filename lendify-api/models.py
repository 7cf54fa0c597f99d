from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# --------------------------------------------------------------------------
# Records (one per row of the six collections)
# --------------------------------------------------------------------------
class LoanStatus(str, Enum):
    borrowed = "borrowed"
    returned = "returned"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # DATETIME columns come back naive; they are stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Category(BaseModel):
    id: int
    name: str


class Item(BaseModel):
    id: int
    name: str
    description: str = ""
    image_url: Optional[str] = None
    purchase_date: Optional[date] = None
    category_id: Optional[int] = None
    quantity: int = Field(0, ge=0)

    @field_validator("description", mode="before")
    @classmethod
    def _blank_description(cls, v):
        return "" if v is None else v


class Unit(BaseModel):
    id: int
    name: str


class User(BaseModel):
    id: int
    name: str
    unit_id: Optional[int] = None


class Admin(BaseModel):
    id: int
    username: str
    password: str


class AdminOut(BaseModel):
    id: int
    username: str


class LoanRecord(BaseModel):
    id: int
    item_id: int
    # snapshots taken when the loan was created, never refreshed
    item_name: str
    item_image: Optional[str] = None
    borrower_id: Optional[int] = None
    borrower_name: str
    borrow_date: datetime
    return_date: Optional[datetime] = None
    status: LoanStatus
    purpose: Optional[str] = None
    expected_duration: Optional[int] = None

    @field_validator("borrow_date", "return_date")
    @classmethod
    def _utc(cls, v):
        return _as_utc(v)

    @model_validator(mode="after")
    def _return_date_follows_status(self):
        if (self.status == LoanStatus.returned) != (self.return_date is not None):
            raise ValueError("return_date must be set exactly when status is 'returned'")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.borrowed


# --------------------------------------------------------------------------
# Snapshot of every collection, replaced wholesale on refresh
# --------------------------------------------------------------------------
class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: List[Category] = Field(default_factory=list)
    items: List[Item] = Field(default_factory=list)
    units: List[Unit] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)
    admins: List[Admin] = Field(default_factory=list)
    loans: List[LoanRecord] = Field(default_factory=list)
    fetched_at: Optional[datetime] = None

    def item(self, item_id: int) -> Optional[Item]:
        return next((i for i in self.items if i.id == item_id), None)

    def category(self, category_id: Optional[int]) -> Optional[Category]:
        return next((c for c in self.categories if c.id == category_id), None)

    def unit(self, unit_id: Optional[int]) -> Optional[Unit]:
        return next((u for u in self.units if u.id == unit_id), None)

    def user(self, user_id: Optional[int]) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def admin(self, admin_id: int) -> Optional[Admin]:
        return next((a for a in self.admins if a.id == admin_id), None)

    def admin_by_username(self, username: str) -> Optional[Admin]:
        return next((a for a in self.admins if a.username == username), None)

    def loan(self, loan_id: int) -> Optional[LoanRecord]:
        return next((l for l in self.loans if l.id == loan_id), None)

    @property
    def active_loans(self) -> List[LoanRecord]:
        return [l for l in self.loans if l.is_active]

    def counts(self) -> dict:
        return {
            "categories": len(self.categories),
            "items": len(self.items),
            "units": len(self.units),
            "users": len(self.users),
            "admins": len(self.admins),
            "loan_records": len(self.loans),
        }


# --------------------------------------------------------------------------
# Request bodies
# --------------------------------------------------------------------------
class CategoryIn(BaseModel):
    name: str = ""


class ItemIn(BaseModel):
    name: str = ""
    description: str = ""
    image_url: Optional[str] = None
    purchase_date: Optional[date] = None
    category_id: Optional[int] = None
    quantity: int = 1


class ItemPatch(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    purchase_date: Optional[date] = None
    category_id: Optional[int] = None
    quantity: Optional[int] = None


class UnitIn(BaseModel):
    name: str = ""


class UserIn(BaseModel):
    name: str = ""
    unit_id: Optional[int] = None


class AdminIn(BaseModel):
    username: str = ""
    # left empty on edit to keep the current password
    password: Optional[str] = None
    confirm_password: Optional[str] = None


class BorrowIn(BaseModel):
    borrower_id: Optional[int] = None
    purpose: str = ""
    duration: int = 1


class LogoutIn(BaseModel):
    confirm: bool = False


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
