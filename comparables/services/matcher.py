from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from pydantic import BaseModel
from structlog import get_logger

from comparables.config import Settings, settings
from comparables.models.location import Coordinates, LocationResult
from comparables.models.property import PropertyRecord, PropertyType, SearchCriteria
from comparables.models.tier import CityScope, Tier, TypeScope, validate_ladder
from comparables.utils.geo import haversine_km
from comparables.utils.text import contains_either_way, normalize

logger = get_logger(__name__)

TYPE_SCORES = {"exact": 1.0, "related": 0.8, "unrelated": 0.3}
# Bedroom delta -> size sub-score; larger deltas score SIZE_SCORE_FLOOR
SIZE_SCORES = {0: 1.0, 1: 0.8, 2: 0.6}
SIZE_SCORE_FLOOR = 0.3
# (max relative price deviation, sub-score), checked in order
PRICE_BANDS = [(0.20, 1.0), (0.50, 0.8), (1.00, 0.6)]
PRICE_SCORE_FLOOR = 0.3
LOCATION_SCORES = {"city": 1.0, "sub_area": 0.8, "adjacent": 0.6, "province": 0.4, "none": 0.0}
# (max distance km, minimum location sub-score) when both sides are precise
DISTANCE_BANDS = [(1.0, 0.8), (5.0, 0.6)]


@dataclass(frozen=True)
class MatchingRules:
    """Region and weighting tables the matcher runs against."""

    related_types: Dict[PropertyType, FrozenSet[PropertyType]]
    adjacency: Dict[str, FrozenSet[str]]
    provinces: Dict[str, str]
    weights: Dict[str, float]
    target_count: int = 8
    max_results: int = 10

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "MatchingRules":
        related = {}
        for key, members in config.RELATED_PROPERTY_TYPES.items():
            subject = PropertyType.parse(key)
            related[subject] = frozenset(PropertyType.parse(m) for m in members) | {subject}
        return cls(
            related_types=related,
            adjacency={normalize(k): frozenset(normalize(c) for c in v) for k, v in config.CITY_ADJACENCY.items()},
            provinces={normalize(k): normalize(v) for k, v in config.CITY_PROVINCES.items()},
            weights=dict(config.SCORE_WEIGHTS),
            target_count=config.TARGET_COMPARABLES,
            max_results=config.MAX_COMPARABLES,
        )

    def related_group(self, property_type: PropertyType) -> FrozenSet[PropertyType]:
        return self.related_types.get(property_type, frozenset({property_type}))

    def neighbours(self, city: str) -> FrozenSet[str]:
        return self.adjacency.get(normalize(city), frozenset())

    def province_of(self, city: Optional[str], province: Optional[str] = None) -> str:
        if province:
            return normalize(province)
        return self.provinces.get(normalize(city), "")


class SubScores(BaseModel):
    location: float
    type: float
    size: float
    price: float


class ScoredComparable(BaseModel):
    record: PropertyRecord
    score: float
    sub_scores: SubScores
    tier: int
    price_per_sqm: float
    distance_km: Optional[float] = None


class ComparableSearchResult(BaseModel):
    comparables: List[ScoredComparable] = []
    tier_reached: int = 0
    considered: int = 0
    degraded: bool = False


@dataclass
class Candidate:
    record: PropertyRecord
    tier: Tier


@dataclass
class CandidatePool:
    candidates: List[Candidate] = field(default_factory=list)
    tier_reached: int = 0
    considered: int = 0

    def __len__(self) -> int:
        return len(self.candidates)

    @property
    def records(self) -> List[PropertyRecord]:
        return [c.record for c in self.candidates]


def _default_rules(rules: Optional[MatchingRules]) -> MatchingRules:
    return rules or MatchingRules.from_settings()


def is_nearby(subject_city: str, candidate_city: str, rules: MatchingRules) -> bool:
    if contains_either_way(subject_city, candidate_city):
        return True
    return any(contains_either_way(n, candidate_city) for n in rules.neighbours(subject_city))


def _within_count(tolerance: Optional[int], subject: Optional[int], candidate: int) -> bool:
    if tolerance is None or subject is None:
        return True
    return abs(candidate - subject) <= tolerance


def _within_ratio(tolerance: Optional[float], subject: Optional[float], candidate: Optional[float]) -> bool:
    if tolerance is None or not subject:
        return True
    if candidate is None:
        return False
    return abs(candidate - subject) / subject <= tolerance


def admits(tier: Tier, criteria: SearchCriteria, record: PropertyRecord, rules: MatchingRules) -> bool:
    """Tier predicate; every record a tier admits is admitted by every looser tier."""
    if tier.city_scope == CityScope.SAME:
        if not contains_either_way(criteria.city, record.city):
            return False
    elif not is_nearby(criteria.city, record.city, rules):
        return False

    if tier.type_scope == TypeScope.EXACT:
        if record.property_type != criteria.property_type:
            return False
    elif record.property_type not in rules.related_group(criteria.property_type):
        return False

    return (
        _within_count(tier.bedroom_tolerance, criteria.bedrooms, record.bedrooms)
        and _within_count(tier.bathroom_tolerance, criteria.bathrooms, record.bathrooms)
        and _within_ratio(tier.price_tolerance, criteria.price, record.price)
        and _within_ratio(tier.area_tolerance, criteria.build_area, record.build_area)
    )


def _eligible(record: PropertyRecord, criteria: SearchCriteria) -> bool:
    if not record.is_active or record.price <= 0 or record.build_area <= 0:
        return False
    return not (criteria.exclude_reference and record.reference == criteria.exclude_reference)


def select_candidates(
    criteria: SearchCriteria,
    records: Iterable[PropertyRecord],
    tiers: Optional[Sequence[Tier]] = None,
    rules: Optional[MatchingRules] = None,
) -> CandidatePool:
    """
    Walk the relaxation ladder, accumulating newly admitted records.

    A record keeps the strictest tier that admitted it. Escalation stops once
    the pool reaches the tier's target count (capped by the overall target)
    or the ladder runs out.
    """
    rules = _default_rules(rules)
    ladder = validate_ladder(tiers if tiers is not None else settings.TIERS)
    eligible = [r for r in records if _eligible(r, criteria)]
    pool = CandidatePool(considered=len(eligible))
    admitted_refs = set()

    for tier in ladder:
        pool.tier_reached = tier.level
        admitted = 0
        for record in eligible:
            if record.reference in admitted_refs:
                continue
            if admits(tier, criteria, record, rules):
                admitted_refs.add(record.reference)
                pool.candidates.append(Candidate(record=record, tier=tier))
                admitted += 1
        logger.debug("tier_evaluated", level=tier.level, name=tier.name, admitted=admitted, pool=len(pool))
        if len(pool) >= min(tier.target_count, rules.target_count):
            break
    return pool


def type_score(subject: PropertyType, candidate: PropertyType, rules: MatchingRules) -> float:
    if subject == candidate:
        return TYPE_SCORES["exact"]
    if candidate in rules.related_group(subject):
        return TYPE_SCORES["related"]
    return TYPE_SCORES["unrelated"]


def size_score(subject_bedrooms: int, candidate_bedrooms: int) -> float:
    return SIZE_SCORES.get(abs(candidate_bedrooms - subject_bedrooms), SIZE_SCORE_FLOOR)


def price_score(subject_price: float, candidate_price: float) -> float:
    deviation = abs(candidate_price - subject_price) / subject_price
    for limit, score in PRICE_BANDS:
        if deviation <= limit:
            return score
    return PRICE_SCORE_FLOOR


def location_score(
    criteria: SearchCriteria,
    record: PropertyRecord,
    rules: MatchingRules,
    distance_km: Optional[float] = None,
) -> float:
    if contains_either_way(criteria.city, record.city):
        score = LOCATION_SCORES["city"]
    elif any(
        contains_either_way(a, b)
        for a in (criteria.suburb, criteria.urbanization)
        for b in (record.suburb, record.urbanization)
    ):
        score = LOCATION_SCORES["sub_area"]
    elif is_nearby(criteria.city, record.city, rules):
        score = LOCATION_SCORES["adjacent"]
    else:
        subject_province = rules.province_of(criteria.city, criteria.province)
        candidate_province = rules.province_of(record.city, record.province)
        if contains_either_way(subject_province, candidate_province):
            score = LOCATION_SCORES["province"]
        else:
            score = LOCATION_SCORES["none"]

    if distance_km is not None:
        for limit, floor in DISTANCE_BANDS:
            if distance_km <= limit:
                score = max(score, floor)
                break
    return min(score, 1.0)


def _candidate_coordinates(
    record: PropertyRecord, candidate_locations: Optional[Dict[str, LocationResult]]
) -> Optional[Coordinates]:
    resolved = (candidate_locations or {}).get(record.reference)
    if resolved is not None and resolved.is_precise:
        return resolved.coordinates
    return record.coordinates


def score_candidate(
    criteria: SearchCriteria,
    record: PropertyRecord,
    tier: int,
    rules: MatchingRules,
    subject_coordinates: Optional[Coordinates] = None,
    candidate_coordinates: Optional[Coordinates] = None,
) -> ScoredComparable:
    distance = None
    if subject_coordinates is not None and candidate_coordinates is not None:
        distance = round(haversine_km(subject_coordinates, candidate_coordinates), 3)
    subs = SubScores(
        location=location_score(criteria, record, rules, distance),
        type=type_score(criteria.property_type, record.property_type, rules),
        size=size_score(criteria.bedrooms, record.bedrooms),
        price=price_score(criteria.price, record.price),
    )
    weights = rules.weights
    total = (
        weights["location"] * subs.location
        + weights["type"] * subs.type
        + weights["size"] * subs.size
        + weights["price"] * subs.price
    )
    return ScoredComparable(
        record=record,
        score=max(0.0, min(1.0, round(total, 4))),
        sub_scores=subs,
        tier=tier,
        price_per_sqm=round(record.price_per_sqm, 2),
        distance_km=distance,
    )


def rank(
    criteria: SearchCriteria,
    pool: CandidatePool,
    subject_location: Optional[LocationResult] = None,
    candidate_locations: Optional[Dict[str, LocationResult]] = None,
    rules: Optional[MatchingRules] = None,
) -> List[ScoredComparable]:
    """Score the pool, best first; ties go to the closer price, then the reference."""
    rules = _default_rules(rules)
    subject_coordinates = None
    if subject_location is not None and subject_location.is_precise:
        subject_coordinates = subject_location.coordinates

    scored = [
        score_candidate(
            criteria,
            candidate.record,
            candidate.tier.level,
            rules,
            subject_coordinates,
            _candidate_coordinates(candidate.record, candidate_locations) if subject_coordinates else None,
        )
        for candidate in pool.candidates
    ]
    scored.sort(key=lambda s: (-s.score, abs(s.record.price - criteria.price), s.record.reference))
    return scored[: rules.max_results]


def find_comparables(
    criteria: SearchCriteria,
    records: Iterable[PropertyRecord],
    tiers: Optional[Sequence[Tier]] = None,
    rules: Optional[MatchingRules] = None,
    subject_location: Optional[LocationResult] = None,
    candidate_locations: Optional[Dict[str, LocationResult]] = None,
) -> ComparableSearchResult:
    rules = _default_rules(rules)
    pool = select_candidates(criteria, records, tiers, rules)
    comparables = rank(criteria, pool, subject_location, candidate_locations, rules)
    if not comparables:
        logger.info("no_comparables_found", city=criteria.city, property_type=criteria.property_type.value)
    return ComparableSearchResult(
        comparables=comparables,
        tier_reached=pool.tier_reached,
        considered=pool.considered,
        degraded=not comparables,
    )
