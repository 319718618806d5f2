from .base import (
    BookingRepository,
    BusinessRepository,
    CustomerResolver,
    PolicyRepository,
    Repositories,
    ServiceRepository,
    StaffRepository,
)
from .sql import SqlRepositories

__all__ = [
    "BookingRepository",
    "BusinessRepository",
    "CustomerResolver",
    "PolicyRepository",
    "Repositories",
    "ServiceRepository",
    "SqlRepositories",
    "StaffRepository",
]
