from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, confloat, constr, field_validator


class PersonCreate(BaseModel):
    person_id: constr(min_length=1, max_length=64)
    full_name: constr(min_length=1)
    email: Optional[str] = None


class PersonOut(PersonCreate):
    registered_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CheckInRequest(BaseModel):
    person_id: constr(min_length=1, max_length=64)
    purpose: str = ""
    name: Optional[str] = None


class CheckOutRequest(BaseModel):
    person_id: constr(min_length=1, max_length=64)


class EntryOut(BaseModel):
    id: int
    person_id: str
    name: Optional[str] = None
    purpose: str
    check_in_at: datetime
    check_out_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ScanOut(BaseModel):
    action: str
    entry: EntryOut


class BookBase(BaseModel):
    title: constr(min_length=1)
    author: constr(min_length=1)
    category: str = ""
    isbn: Optional[str] = None
    description: Optional[str] = None


class BookCreate(BookBase):
    total_copies: int = 1
    # defaults to total_copies
    available_copies: Optional[int] = None


class BookUpdate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    isbn: Optional[str] = None
    description: Optional[str] = None
    total_copies: Optional[int] = None
    available_copies: Optional[int] = None

    @field_validator("title", "author")
    @classmethod
    def ensure_not_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError("must not be blank")
        return v


class BookOut(BookBase):
    id: int
    available_copies: int
    total_copies: int
    deleted: bool
    added_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BorrowCreate(BaseModel):
    book_id: int
    person_id: constr(min_length=1, max_length=64)
    person_name: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class LostRequest(BaseModel):
    penalty: confloat(gt=0, allow_inf_nan=False)


class BorrowOut(BaseModel):
    id: int
    book_id: int
    book_title: str
    person_id: str
    person_name: Optional[str] = None
    borrow_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: str
    rejection_reason: Optional[str] = None
    lost_penalty: Optional[float] = None
    fine_status: Optional[str] = None
    fine_paid_date: Optional[datetime] = None
    # derived on read
    is_overdue: bool = False
    days_overdue: int = 0
    fine_amount: float = 0.0
    model_config = ConfigDict(from_attributes=True)


class FinesOut(BaseModel):
    person_id: str
    total_unpaid: float
    can_borrow: bool


class NotificationOut(BaseModel):
    id: int
    person_id: str
    title: str
    message: str
    severity: str
    related_book_id: Optional[int] = None
    created_at: datetime
    read: bool
    model_config = ConfigDict(from_attributes=True)


class StatsOut(BaseModel):
    people_inside: int
    total_books: int
    pending_requests: int
    active_borrows: int
    overdue_borrows: int
    outstanding_fines: float
    categories: List[str] = Field(default_factory=list)
