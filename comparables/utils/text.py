import hashlib
import unicodedata
from typing import Optional


def normalize(text: Optional[str]) -> str:
    """Lowercase, strip accents and collapse whitespace ("Benahavís " -> "benahavis")."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(text))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


def contains_either_way(a: Optional[str], b: Optional[str]) -> bool:
    """Substring-tolerant equality; empty values never match."""
    na, nb = normalize(a), normalize(b)
    if not na or not nb:
        return False
    return na in nb or nb in na


def digest(*parts: str) -> str:
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
