# finance_api/schemas/budget.py
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class BudgetAllocation(BaseModel):
    category_id: int
    allocated_amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class BudgetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    total_limit: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    categories: List[BudgetAllocation] = Field(default_factory=list)


class BudgetUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_limit: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
