from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, constr


class ProductBase(BaseModel):
    name: constr(min_length=1, max_length=200)
    price: Decimal = Field(ge=0, max_digits=18, decimal_places=2)


class ProductIn(ProductBase):
    id: Optional[UUID] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Mechanical keyboard",
                "price": "349.90",
            }
        }
    }


class ProductOut(ProductBase):
    id: UUID

    model_config = ConfigDict(from_attributes=True)


class ProductPage(BaseModel):
    page: int
    page_size: int
    total: int
    items: List[ProductOut]
