# finance_api/schemas/transfer.py
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TransferCreate(BaseModel):
    from_account_id: int
    to_user_id: int
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    transfer_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=500)
    fee_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)


class TransferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference_number: str
    from_account_id: int
    to_account_id: int
    amount: Decimal
    fee_amount: Decimal
    description: str
    transfer_date: date
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
