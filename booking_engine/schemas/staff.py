# booking_engine/schemas/staff.py

from pydantic import BaseModel, ConfigDict

from .schedule import ScheduleTemplate
from .services import Service


class StaffMember(BaseModel):
    id: int
    business_id: int
    name: str = ""
    active: bool = True
    service_ids: frozenset[int] = frozenset()
    schedule: ScheduleTemplate = ScheduleTemplate()

    model_config = ConfigDict(frozen=True)

    def can_perform(self, service: Service) -> bool:
        return service.id in self.service_ids
