# booking_engine/schemas/business.py

from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, field_validator


class Business(BaseModel):
    id: int
    name: str = ""
    time_zone: str = "UTC"

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @field_validator("time_zone", mode="before")
    @classmethod
    def default_zone(cls, value):
        return value or "UTC"

    @field_validator("time_zone")
    @classmethod
    def known_zone(cls, value: str) -> str:
        # raises ZoneInfoNotFoundError (a KeyError) for unknown names
        try:
            ZoneInfo(value)
        except (KeyError, ValueError) as e:
            raise ValueError(f"unknown time zone: {value!r}") from e
        return value

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)
