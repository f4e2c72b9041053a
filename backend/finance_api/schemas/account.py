# finance_api/schemas/account.py
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AccountTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    allows_negative_balance: bool
    is_asset: bool


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type_id: int


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    type_id: int
    account_type: AccountTypeOut
    current_balance: Decimal
    is_active: bool
    created_at: Optional[datetime] = None
