# finance_api/schemas/category.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finance_api.db.models import CategoryType


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    type: CategoryType

    @field_validator("type", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.lower() if isinstance(v, str) else v


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    name: str
    type: CategoryType
    is_system: bool
