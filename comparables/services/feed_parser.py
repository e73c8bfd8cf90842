import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError
from structlog import get_logger

from comparables.errors import FeedParseError
from comparables.models.property import PropertyRecord

logger = get_logger(__name__)

TRUE_VALUES = {"1", "true", "yes", "y", "si", "sí"}
FALSE_VALUES = {"0", "false", "no", "n"}


@dataclass
class ParseResult:
    records: List[PropertyRecord] = field(default_factory=list)
    dropped: int = 0


def _text(node: ET.Element, names: Iterable[str]) -> Optional[str]:
    """First non-empty child text (or attribute) among ``names``."""
    for name in names:
        child = node.find(name)
        if child is not None and child.text and child.text.strip():
            return child.text.strip()
        attr = node.get(name)
        if attr and attr.strip():
            return attr.strip()
    return None


def _number(node: ET.Element, names: Iterable[str]) -> Optional[float]:
    raw = _text(node, names)
    if raw is None:
        return None
    value = float(raw.replace(",", ""))
    if not math.isfinite(value):
        raise ValueError(f"Non-finite number: {raw!r}")
    return value


def _flag(node: ET.Element, names: Iterable[str], default: bool = True) -> bool:
    raw = _text(node, names)
    if raw is None:
        return default
    value = raw.lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"Unrecognised boolean value: {raw!r}")


def _descriptions(node: ET.Element) -> Dict[str, str]:
    descriptions = {}
    for desc in node.findall("descriptions/description"):
        language = desc.get("language") or "en"
        text_node = desc.find("text")
        text = text_node.text if text_node is not None else desc.text
        if text and text.strip():
            descriptions[language] = text.strip()
    return descriptions


def _features(node: ET.Element) -> frozenset:
    return frozenset(
        f.text.strip() for f in node.findall("features/feature") if f.text and f.text.strip()
    )


def parse_property(node: ET.Element) -> Optional[PropertyRecord]:
    """
    Convert one <property> element into a PropertyRecord.
    Returns None when the element has no reference; raises ValueError /
    ValidationError when a field cannot be converted.
    """
    reference = _text(node, ["reference"])
    if not reference:
        return None
    bedrooms = _number(node, ["bedrooms"])
    bathrooms = _number(node, ["bathrooms"])
    return PropertyRecord(
        reference=reference,
        city=_text(node, ["city"]) or "",
        province=_text(node, ["province"]),
        suburb=_text(node, ["suburb"]),
        urbanization=_text(node, ["urbanization"]),
        street=_text(node, ["street", "address_line_1"]),
        street_number=_text(node, ["number", "street_number"]),
        property_type=_text(node, ["property_type"]),
        bedrooms=int(bedrooms or 0),
        bathrooms=int(bathrooms or 0),
        build_area=_number(node, ["build_area", "built_area"]),
        plot_area=_number(node, ["plot_size", "plot_area"]),
        price=_number(node, ["sale_price", "price"]),
        latitude=_number(node, ["lat", "latitude"]),
        longitude=_number(node, ["lng", "longitude"]),
        descriptions=_descriptions(node),
        features=_features(node),
        is_active=_flag(node, ["is_active", "active"]),
    )


def parse_feed(payload: bytes) -> ParseResult:
    """
    Parse a PropertyList.es style document (<properties><property>...</property></properties>).
    Records that cannot be converted are dropped and counted; a document that is not
    well-formed XML raises FeedParseError.
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        logger.error("Feed document is not well-formed XML", error=str(e))
        raise FeedParseError(f"Feed document is not well-formed XML: {e}") from e

    nodes = [root] if root.tag == "property" else root.findall("property")
    result = ParseResult()
    for node in nodes:
        try:
            record = parse_property(node)
        except (ValueError, TypeError, OverflowError, ValidationError) as e:
            result.dropped += 1
            logger.debug("feed_record_dropped", reference=_text(node, ["reference"]), error=str(e))
            continue
        if record is None:
            result.dropped += 1
            continue
        result.records.append(record)

    if result.dropped:
        logger.warning("feed_records_dropped", dropped=result.dropped, kept=len(result.records))
    return result
