import enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field


class CityScope(str, enum.Enum):
    SAME = "same"
    # Same city or any city adjacent to it
    NEARBY = "nearby"


class TypeScope(str, enum.Enum):
    EXACT = "exact"
    RELATED = "related"


class Tier(BaseModel):
    """One rung of the relaxation ladder.

    A tolerance of ``None`` leaves that attribute unconstrained. Price and area
    tolerances are fractions of the subject's value (0.2 == ±20%), bedroom and
    bathroom tolerances are absolute counts.
    """

    level: int = Field(ge=1)
    name: str = ""
    city_scope: CityScope = CityScope.SAME
    type_scope: TypeScope = TypeScope.EXACT
    bedroom_tolerance: Optional[int] = Field(default=None, ge=0)
    bathroom_tolerance: Optional[int] = Field(default=None, ge=0)
    price_tolerance: Optional[float] = Field(default=None, ge=0)
    area_tolerance: Optional[float] = Field(default=None, ge=0)
    target_count: int = Field(default=8, ge=1)

    class Config:
        frozen = True


DEFAULT_TIERS: List[Tier] = [
    Tier(level=1, name="exact", city_scope=CityScope.SAME, type_scope=TypeScope.EXACT,
         bedroom_tolerance=0, bathroom_tolerance=0, price_tolerance=0.20, area_tolerance=0.30),
    Tier(level=2, name="related", city_scope=CityScope.SAME, type_scope=TypeScope.RELATED,
         bedroom_tolerance=1, bathroom_tolerance=1, price_tolerance=0.50, area_tolerance=0.50),
    Tier(level=3, name="wide", city_scope=CityScope.SAME, type_scope=TypeScope.RELATED,
         bedroom_tolerance=2, bathroom_tolerance=2, price_tolerance=1.00),
    Tier(level=4, name="nearby", city_scope=CityScope.NEARBY, type_scope=TypeScope.RELATED),
]


def _looser_or_equal(previous: Optional[float], following: Optional[float]) -> bool:
    if following is None:
        return True
    if previous is None:
        return False
    return following >= previous


def validate_ladder(tiers: Sequence[Tier]) -> List[Tier]:
    """Return the ladder ordered by level, rejecting any tier that tightens a constraint."""
    ordered = sorted(tiers, key=lambda t: t.level)
    if not ordered:
        raise ValueError("At least one tier is required")
    levels = [t.level for t in ordered]
    if len(set(levels)) != len(levels):
        raise ValueError(f"Duplicate tier levels: {levels}")
    for prev, nxt in zip(ordered, ordered[1:]):
        if prev.city_scope == CityScope.NEARBY and nxt.city_scope == CityScope.SAME:
            raise ValueError(f"Tier {nxt.level} narrows the city scope of tier {prev.level}")
        if prev.type_scope == TypeScope.RELATED and nxt.type_scope == TypeScope.EXACT:
            raise ValueError(f"Tier {nxt.level} narrows the type scope of tier {prev.level}")
        for attr in ("bedroom_tolerance", "bathroom_tolerance", "price_tolerance", "area_tolerance"):
            if not _looser_or_equal(getattr(prev, attr), getattr(nxt, attr)):
                raise ValueError(f"Tier {nxt.level} tightens {attr} relative to tier {prev.level}")
    return ordered
