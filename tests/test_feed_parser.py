import pytest

from comparables.errors import FeedParseError
from comparables.models import PropertyType
from comparables.services.feed_parser import parse_feed
from tests.conftest import feed_xml, property_xml


def test_parse_full_property():
    payload = feed_xml([
        "<property>"
        "<reference>PL-1001</reference>"
        "<property_type>1</property_type>"
        "<province>Málaga</province><city>Benahavís</city>"
        "<suburb>La Zagaleta</suburb><urbanization>Los Arqueros</urbanization>"
        "<address_line_1>Calle Lirio</address_line_1><number>7</number>"
        "<bedrooms>4</bedrooms><bathrooms>3</bathrooms>"
        "<built_area>310.5</built_area><plot_size>1200</plot_size>"
        "<price>1,250,000</price>"
        "<lat>36.52</lat><lng>-5.04</lng>"
        "<features><feature>pool</feature><feature>garage</feature></features>"
        "<descriptions>"
        "<description language='en'><text>Villa with sea views</text></description>"
        "<description language='es'><text>Villa con vistas al mar</text></description>"
        "</descriptions>"
        "</property>"
    ])
    result = parse_feed(payload)

    assert result.dropped == 0
    assert len(result.records) == 1
    record = result.records[0]
    assert record.reference == "PL-1001"
    assert record.property_type == PropertyType.VILLA
    assert record.city == "Benahavís"
    assert record.street == "Calle Lirio"
    assert record.street_number == "7"
    assert record.build_area == 310.5
    assert record.plot_area == 1200
    assert record.price == 1250000
    assert record.coordinates.lat == 36.52
    assert record.features == frozenset({"pool", "garage"})
    assert record.descriptions == {"en": "Villa with sea views", "es": "Villa con vistas al mar"}
    assert record.is_active is True
    assert record.price_per_sqm == pytest.approx(1250000 / 310.5)


def test_textual_property_type_and_inactive_flag():
    payload = feed_xml([
        property_xml(reference="A", property_type="Country House", city="Ronda",
                     build_area=200, sale_price=400000, is_active="false"),
    ])
    record = parse_feed(payload).records[0]
    assert record.property_type == PropertyType.COUNTRY_HOUSE
    assert record.is_active is False


def test_malformed_records_are_dropped_and_counted():
    payload = feed_xml([
        property_xml(reference="OK", city="Marbella", build_area=100, sale_price=300000),
        property_xml(city="Marbella", build_area=100, sale_price=300000),
        property_xml(reference="NO-PRICE", city="Marbella", build_area=100),
        property_xml(reference="ZERO-AREA", city="Marbella", build_area=0, sale_price=300000),
        property_xml(reference="BAD-NUMBER", city="Marbella", build_area="big", sale_price=300000),
        property_xml(reference="BAD-FLAG", city="Marbella", build_area=100, sale_price=1, active="maybe"),
    ])
    result = parse_feed(payload)

    assert [r.reference for r in result.records] == ["OK"]
    assert result.dropped == 5


def test_unknown_property_type_maps_to_other():
    payload = feed_xml([property_xml(reference="X", property_type="castle", build_area=80, sale_price=1000)])
    assert parse_feed(payload).records[0].property_type == PropertyType.OTHER


def test_document_that_is_not_xml_raises():
    with pytest.raises(FeedParseError):
        parse_feed(b"<properties><property>")


def test_empty_feed():
    result = parse_feed(feed_xml([]))
    assert result.records == []
    assert result.dropped == 0


@pytest.mark.parametrize(
    "field, value",
    [
        ("bedrooms", "1e400"),
        ("bathrooms", "inf"),
        ("sale_price", "1e400"),
        ("build_area", "nan"),
        ("lat", "-inf"),
    ],
)
def test_non_finite_numbers_drop_only_their_record(field, value):
    bad = dict(reference="BAD", city="Marbella", bedrooms=2, build_area=100, sale_price=300000)
    bad[field] = value
    payload = feed_xml([
        property_xml(reference="A", city="Marbella", build_area=100, sale_price=300000),
        property_xml(**bad),
        property_xml(reference="B", city="Marbella", build_area=90, sale_price=280000),
    ])

    result = parse_feed(payload)

    assert [r.reference for r in result.records] == ["A", "B"]
    assert result.dropped == 1
