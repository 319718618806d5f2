# booking_engine/schemas/services.py

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Service(BaseModel):
    id: int
    business_id: int
    name: str = ""

    duration: int = Field(ge=1)  # minutes, before policy clamping
    price: float = 0.0

    service_type: Literal["standard", "experience"] = "standard"
    min_bookings: Optional[int] = None
    max_bookings: Optional[int] = None
    spots: Optional[int] = None

    model_config = {"from_attributes": True}

    @property
    def is_experience(self) -> bool:
        return self.service_type == "experience"
