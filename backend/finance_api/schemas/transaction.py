# finance_api/schemas/transaction.py
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finance_api.db.models import TransactionType
from finance_api.schemas.category import CategoryOut


class TransactionCreate(BaseModel):
    account_id: int
    category_id: int
    type: TransactionType
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    transaction_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("type", mode="before")
    @classmethod
    def _upper(cls, v):
        # accept "income" as well as "INCOME"
        return v.upper() if isinstance(v, str) else v


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    category_id: int
    category: Optional[CategoryOut] = None
    type: TransactionType
    amount: Decimal
    description: str
    transaction_date: date
    notes: Optional[str] = None
    receipt_id: Optional[int] = None
    created_at: Optional[datetime] = None
