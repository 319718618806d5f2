# booking_engine/schemas/customers.py

from typing import Optional

from pydantic import BaseModel


class TenantCustomer(BaseModel):
    id: int
    business_id: int

    first_name: str
    last_name: Optional[str] = None
    email: str
    phone: Optional[str] = None

    model_config = {"from_attributes": True}

    @property
    def name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)
