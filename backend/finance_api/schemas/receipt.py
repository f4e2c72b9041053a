# finance_api/schemas/receipt.py
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReceiptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    merchant_name: Optional[str] = None
    amount: Optional[Decimal] = None
    receipt_date: Optional[date] = None
    suggested_category: Optional[str] = None
    confidence: float
    image_url: str
    transaction_created: bool
    created_at: Optional[datetime] = None


class ReceiptTransactionCreate(BaseModel):
    # extracted values are only suggestions; the user confirms them here
    account_id: int
    category_id: int
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    transaction_date: date
    notes: Optional[str] = Field(None, max_length=500)
