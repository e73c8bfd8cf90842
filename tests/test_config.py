import pytest
from pydantic import ValidationError

from comparables.config import Settings
from comparables.models import PropertyRecord, PropertyType, SearchCriteria


def test_defaults():
    config = Settings()
    assert config.FEED_CACHE_TTL_SECONDS == 300
    assert [t.level for t in config.TIERS] == [1, 2, 3, 4]
    assert sum(config.SCORE_WEIGHTS.values()) == pytest.approx(1.0)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FEED_CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("SCORE_WEIGHTS", '{"location": 0.5, "type": 0.2, "size": 0.2, "price": 0.1}')
    config = Settings()
    assert config.FEED_CACHE_TTL_SECONDS == 60
    assert config.SCORE_WEIGHTS["location"] == 0.5


def test_weights_must_sum_to_one():
    with pytest.raises(ValidationError):
        Settings(SCORE_WEIGHTS={"location": 0.5, "type": 0.5, "size": 0.5, "price": 0.5})
    with pytest.raises(ValidationError):
        Settings(SCORE_WEIGHTS={"location": 1.0})


def test_non_monotonic_ladder_is_rejected():
    with pytest.raises(ValidationError):
        Settings(TIERS=[{"level": 1, "price_tolerance": 0.5}, {"level": 2, "price_tolerance": 0.1}])


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("villa", PropertyType.VILLA),
        ("Country House", PropertyType.COUNTRY_HOUSE),
        ("semi_detached", PropertyType.SEMI_DETACHED),
        ("3", PropertyType.PENTHOUSE),
        (9, PropertyType.COUNTRY_HOUSE),
        ("castle", PropertyType.OTHER),
        (None, PropertyType.OTHER),
    ],
)
def test_property_type_parsing(raw, expected):
    assert PropertyType.parse(raw) is expected


@pytest.mark.parametrize("value", [float("inf"), float("nan")])
def test_non_finite_numbers_are_rejected(value):
    with pytest.raises(ValidationError):
        SearchCriteria(city="Marbella", property_type="villa", bedrooms=3, price=value)
    with pytest.raises(ValidationError):
        PropertyRecord(reference="X", build_area=100, price=value)
    with pytest.raises(ValidationError):
        PropertyRecord(reference="X", build_area=value, price=300000)


def test_main_runs_the_app_with_configured_port(monkeypatch):
    from comparables import __main__ as entrypoint

    seen = {}
    monkeypatch.setattr(entrypoint.settings, "PORT", 8081)
    monkeypatch.setattr(entrypoint.uvicorn, "run", lambda target, **kwargs: seen.update(target=target, **kwargs))

    entrypoint.main()

    assert seen["target"] == "comparables.main:app"
    assert seen["port"] == 8081
