from typing import Optional
from enum import Enum
from procuredesk.schemas.common import CamelModel


class MasterResource(str, Enum):
    """Master-data collections exposed by the procurement API under /master"""
    COUNTRIES = "countries"
    STATES = "states"
    CITIES = "cities"
    FLOORS = "floors"
    TAXES = "taxes"

    @property
    def label(self) -> str:
        return {
            "countries": "Country",
            "states": "State",
            "cities": "City",
            "floors": "Floor",
            "taxes": "Tax",
        }[self.value]


class MasterRecord(CamelModel):
    """
    A master-data row. Only the identity fields are typed; everything else
    (countryId on states, rate on taxes, ...) passes through untouched.
    """
    id: Optional[int] = None
    name: Optional[str] = None
    code: Optional[str] = None
    is_active: Optional[bool] = None

    class Config:
        extra = "allow"
