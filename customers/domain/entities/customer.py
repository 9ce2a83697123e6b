"""
Schemas for the customer demo entity. Customers have no HTTP surface; they
exist to show a second model served by the generic repository.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, constr


class CustomerIn(BaseModel):
    name: constr(min_length=1, max_length=200)
    is_active: bool = True


class CustomerOut(CustomerIn):
    id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
