import enum
from typing import Dict, FrozenSet, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .location import Coordinates


class PropertyType(str, enum.Enum):
    APARTMENT = "apartment"
    VILLA = "villa"
    TOWNHOUSE = "townhouse"
    PENTHOUSE = "penthouse"
    PLOT = "plot"
    COMMERCIAL = "commercial"
    OFFICE = "office"
    GARAGE = "garage"
    WAREHOUSE = "warehouse"
    COUNTRY_HOUSE = "country-house"
    SEMI_DETACHED = "semi-detached"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Union[str, int, "PropertyType", None]) -> "PropertyType":
        """Map a feed or request value onto a PropertyType.

        Accepts enum members, the feed's numeric codes ("0".."9") and free text
        such as "Country House" or "semi_detached". Unknown values become OTHER.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.OTHER
        text = str(value).strip().lower()
        if text.isdigit():
            return NUMERIC_PROPERTY_TYPES.get(int(text), cls.OTHER)
        normalised = "-".join(text.replace("_", " ").split())
        for member in cls:
            if member.value == normalised:
                return member
        return cls.OTHER


# Numeric codes used by the listing feed
NUMERIC_PROPERTY_TYPES: Dict[int, PropertyType] = {
    0: PropertyType.APARTMENT,
    1: PropertyType.VILLA,
    2: PropertyType.TOWNHOUSE,
    3: PropertyType.PENTHOUSE,
    4: PropertyType.PLOT,
    5: PropertyType.COMMERCIAL,
    6: PropertyType.OFFICE,
    7: PropertyType.GARAGE,
    8: PropertyType.WAREHOUSE,
    9: PropertyType.COUNTRY_HOUSE,
}


class PropertyRecord(BaseModel):
    reference: str = Field(min_length=1)
    city: str = ""
    province: Optional[str] = None
    suburb: Optional[str] = None
    urbanization: Optional[str] = None
    street: Optional[str] = None
    street_number: Optional[str] = None
    property_type: PropertyType = PropertyType.OTHER
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    build_area: float = Field(gt=0, allow_inf_nan=False)
    plot_area: Optional[float] = Field(default=None, allow_inf_nan=False)
    price: float = Field(gt=0, allow_inf_nan=False)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90, allow_inf_nan=False)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180, allow_inf_nan=False)
    descriptions: Dict[str, str] = Field(default_factory=dict)
    features: FrozenSet[str] = frozenset()
    is_active: bool = True

    class Config:
        frozen = True

    @field_validator("property_type", mode="before")
    @classmethod
    def _parse_type(cls, v):
        return PropertyType.parse(v)

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(lat=self.latitude, lng=self.longitude)

    @property
    def price_per_sqm(self) -> float:
        return self.price / self.build_area

    @property
    def address(self) -> str:
        parts = []
        if self.street:
            parts.append(f"{self.street} {self.street_number}" if self.street_number else self.street)
        if self.urbanization and self.urbanization != self.suburb:
            parts.append(self.urbanization)
        if self.suburb and self.suburb != self.city:
            parts.append(self.suburb)
        if self.city:
            parts.append(self.city)
        return ", ".join(parts)


class SearchCriteria(BaseModel):
    city: str = Field(min_length=1)
    property_type: PropertyType
    bedrooms: int = Field(ge=0)
    bathrooms: Optional[int] = Field(default=None, ge=0)
    price: float = Field(gt=0, allow_inf_nan=False)
    build_area: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    province: Optional[str] = None
    suburb: Optional[str] = None
    urbanization: Optional[str] = None
    street: Optional[str] = None
    street_number: Optional[str] = None
    address: Optional[str] = None
    location_hint: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90, allow_inf_nan=False)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180, allow_inf_nan=False)
    exclude_reference: Optional[str] = None

    @field_validator("property_type", mode="before")
    @classmethod
    def _parse_type(cls, v):
        return PropertyType.parse(v)

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(lat=self.latitude, lng=self.longitude)

    @property
    def has_location_input(self) -> bool:
        return any([self.street, self.address, self.urbanization, self.location_hint])
