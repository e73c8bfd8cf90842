import asyncio
from typing import Iterable, List, Optional
from xml.sax.saxutils import escape

import pytest

from comparables.models import Coordinates, GeocodeResult, PropertyRecord, PropertyType

MARBELLA = Coordinates(lat=36.5101, lng=-4.8825)


def make_record(reference: str, **overrides) -> PropertyRecord:
    data = dict(
        reference=reference,
        city="Marbella",
        province="Malaga",
        property_type=PropertyType.APARTMENT,
        bedrooms=3,
        bathrooms=2,
        build_area=120.0,
        price=500000.0,
    )
    data.update(overrides)
    return PropertyRecord(**data)


def property_xml(**fields) -> str:
    parts = []
    for name, value in fields.items():
        if value is None:
            continue
        parts.append(f"<{name}>{escape(str(value))}</{name}>")
    return "<property>" + "".join(parts) + "</property>"


def feed_xml(properties: Iterable[str]) -> bytes:
    return ("<?xml version='1.0' encoding='UTF-8'?><properties>" + "".join(properties) + "</properties>").encode(
        "utf-8"
    )


def simple_feed(count: int = 3, city: str = "Marbella") -> bytes:
    return feed_xml(
        property_xml(
            reference=f"R{i}",
            property_type="0",
            city=city,
            bedrooms=3,
            bathrooms=2,
            build_area=120,
            sale_price=500000 + i * 1000,
        )
        for i in range(count)
    )


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFeedSource:
    def __init__(self, payload: bytes, gate: Optional[asyncio.Event] = None):
        self.payload = payload
        self.gate = gate
        self.error: Optional[Exception] = None
        self.calls = 0

    async def fetch(self) -> bytes:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.payload


class FakeGeocoder:
    def __init__(
        self,
        result: Optional[GeocodeResult] = None,
        delay: float = 0.0,
        gate: Optional[asyncio.Event] = None,
        error: Optional[Exception] = None,
        empty: bool = False,
    ):
        self.result = result or GeocodeResult(coordinates=MARBELLA, confidence=0.9)
        self.delay = delay
        self.gate = gate
        self.error = error
        self.empty = empty
        self.calls: List[str] = []

    async def geocode(self, text: str) -> Optional[GeocodeResult]:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.empty:
            return None
        return self.result


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def geocoder():
    return FakeGeocoder()
