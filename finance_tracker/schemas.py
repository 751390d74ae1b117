"""
Form schemas

Pydantic models validating what the HTML forms post before anything is
written to the database.
"""

import re
import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .config import MIN_PASSWORD_LENGTH

COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"
EMAIL_PATTERN = r"^[\w\.\+-]+@[\w\.-]+\.[A-Za-z]{2,}$"


def is_valid_email(email: str) -> bool:
    return re.match(EMAIL_PATTERN, email) is not None


class TransactionIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    type: Literal["income", "expense"] = "expense"
    date: datetime.date
    category_id: Optional[int] = None

    @field_validator("description")
    @classmethod
    def strip_description(cls, value):
        value = value.strip()
        if not value:
            raise ValueError("Description is required.")
        return value

    @field_validator("category_id", mode="before")
    @classmethod
    def blank_category(cls, value):
        # The form posts "none" for Uncategorized
        if value in (None, "", "none"):
            return None
        return value


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field("#3b82f6", pattern=COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value):
        value = value.strip()
        if not value:
            raise ValueError("Category name is required.")
        return value


class ProfileIn(BaseModel):
    email: str
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    full_name: Optional[str] = None
    is_admin: bool = False

    @field_validator("email")
    @classmethod
    def check_email(cls, value):
        value = value.strip().lower()
        if not is_valid_email(value):
            raise ValueError("Invalid email format (e.g. name@example.com).")
        return value


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    is_admin: bool = False


class TransactionFilters(BaseModel):
    description: str = ""
    type: Literal["all", "income", "expense"] = "all"
    category: str = "all"
    date_from: Optional[datetime.date] = None
    date_to: Optional[datetime.date] = None

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def blank_date(cls, value):
        return value or None

    @property
    def category_id(self) -> Optional[int]:
        if self.category in ("", "all"):
            return None
        return int(self.category) if self.category.isdigit() else None


def first_error(exc) -> str:
    """Human-readable message for the first pydantic validation error."""
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ()) if part != "__root__")
    message = error.get("msg", "Invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{field}: {message}" if field else message
