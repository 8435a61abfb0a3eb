"""
Core Data Models for Ildang

These models define the strict schemas for every record the store owns.
They are designed to:
1. Enforce the record invariants at construction time
2. Be immutable once handed out (stores publish snapshots, not live objects)
3. Serialize to the camelCase JSON shape used by backup files

DESIGN DECISION: Python attributes are snake_case, wire names are camelCase.
Both are accepted on input (populate_by_name), backups are written with aliases.
"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Location value reserved for day-off entries
DAY_OFF_LOCATION = "휴무"


class WorkLog(BaseModel):
    """
    One record of work performed (or a day off) on a calendar date.
    
    A date may carry several WorkLogs (one per site visited).
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        frozen=True,
    )
    
    # Identity (assigned by the store)
    id: Optional[int] = Field(
        default=None,
        description="Store-assigned surrogate key"
    )
    
    date: dt.date = Field(
        ...,
        description="Calendar day of the work (YYYY-MM-DD)"
    )
    location: str = Field(
        ...,
        max_length=200,
        description="Work site; the day-off sentinel for days off"
    )
    task: str = Field(
        default="",
        max_length=100,
        description="Kind of work done (legacy, optional)"
    )
    amount: int = Field(
        default=0,
        ge=0,
        description="Wage earned, in whole currency units"
    )
    is_paid: bool = Field(
        default=False,
        alias="isPaid",
        description="Has this day been paid?"
    )
    is_day_off: bool = Field(
        default=False,
        alias="isDayOff",
        description="Non-working day, excluded from totals"
    )
    memo: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    created_at: int = Field(
        default=0,
        ge=0,
        alias="createdAt",
        description="Insertion timestamp in epoch milliseconds"
    )
    
    @model_validator(mode='after')
    def validate_day_off(self) -> 'WorkLog':
        """Day-off entries carry no wage and the sentinel location."""
        if self.is_day_off:
            if self.amount != 0:
                raise ValueError("Day-off entries must have amount 0")
            if self.location != DAY_OFF_LOCATION:
                raise ValueError(
                    f"Day-off entries must use the location '{DAY_OFF_LOCATION}'"
                )
        return self
    
    @property
    def month_key(self) -> str:
        """The YYYY-MM prefix used to group logs by month."""
        return self.date.isoformat()[:7]


class UserSettings(BaseModel):
    """
    Singleton record with the payee and bank details printed on reports.
    
    Exactly one row exists once the store has been initialized.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        frozen=True,
    )
    
    id: Optional[int] = None
    user_name: str = Field(default="", max_length=100, alias="userName")
    bank_name: str = Field(default="", max_length=100, alias="bankName")
    bank_account: str = Field(default="", max_length=100, alias="bankAccount")
    account_holder: str = Field(default="", max_length=100, alias="accountHolder")
    
    @property
    def has_bank_info(self) -> bool:
        """Bank details are shown only when both name and account are set."""
        return bool(self.bank_name) and bool(self.bank_account)
