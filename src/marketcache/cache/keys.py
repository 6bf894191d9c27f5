"""Cache key naming — deterministic logical keys shared with other clients.

Logical keys never include the namespace prefix; ``KeyValueStore`` adds it.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic_core import PydanticSerializationError, to_jsonable_python

from marketcache.errors.exceptions import SerializationError
from marketcache.types import GeospatialQuery

GEO_QUERY_PREFIX = "geo:query:"
GEO_INDEX_PREFIX = "geo:index:"
MERCHANT_LOCATION_PREFIX = "merchant:location:"
PAYLOAD_COLLECTION_PREFIX = "payload:collection:"
PAYLOAD_INDEX_KEY = "payload:index"
# Shared by every namespace, so it is stored without a prefix.
NAMESPACE_REGISTRY_KEY = "marketcache:namespaces"

_COORDINATE_DECIMALS = 4
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_GLOB_SPECIALS = set("*?[]\\")


def canonical_json(value: Any) -> str:
    """Compact JSON with sorted keys, so equal mappings serialize identically."""
    try:
        plain = to_jsonable_python(value)
    except PydanticSerializationError as exc:
        raise SerializationError(f"Cannot serialize {type(value).__name__}: {exc}") from exc
    return json.dumps(
        _integral_floats_as_ints(plain), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _integral_floats_as_ints(value: Any) -> Any:
    """Match JSON clients that print 5.0 as 5."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {k: _integral_floats_as_ints(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_integral_floats_as_ints(v) for v in value]
    return value


def format_number(value: float) -> str:
    """Render a number the way JSON clients do: ``5`` not ``5.0``."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def geo_query_key(query: GeospatialQuery) -> str:
    """``geo:query:{lat}_{lon}_{radiusKm}_{limit}_{filtersJSON}``.

    Coordinates are rounded to four decimals (about 11 m), so nearby
    requests share one entry.
    """
    lat = f"{query.latitude:.{_COORDINATE_DECIMALS}f}"
    lon = f"{query.longitude:.{_COORDINATE_DECIMALS}f}"
    limit = str(query.limit) if query.limit is not None else "all"
    filters = canonical_json(query.filters or {})
    return f"{GEO_QUERY_PREFIX}{lat}_{lon}_{format_number(query.radius_km)}_{limit}_{filters}"


def merchant_location_key(merchant_id: str) -> str:
    return f"{MERCHANT_LOCATION_PREFIX}{merchant_id}"


def geo_index_key(cell: str) -> str:
    return f"{GEO_INDEX_PREFIX}{cell}"


def document_key(collection: str, doc_id: str) -> str:
    return f"{PAYLOAD_COLLECTION_PREFIX}{collection}:{doc_id}"


def query_key(collection: str, query: Mapping[str, Any]) -> str:
    return f"{PAYLOAD_COLLECTION_PREFIX}{collection}:query:{fingerprint(query)}"


def collection_pattern(collection: str) -> str:
    """Glob matching every document and query key of one collection."""
    return f"{escape_pattern(PAYLOAD_COLLECTION_PREFIX + collection)}:*"


def collection_query_pattern(collection: str) -> str:
    return f"{escape_pattern(PAYLOAD_COLLECTION_PREFIX + collection)}:query:*"


def escape_pattern(literal: str) -> str:
    """Escape glob metacharacters so ``literal`` only matches itself."""
    return "".join(f"\\{c}" if c in _GLOB_SPECIALS else c for c in literal)


def fingerprint(query: Mapping[str, Any]) -> str:
    """32-bit rolling hash of the query's canonical JSON, in base 36.

    ``h = h * 31 + unit`` over UTF-16 code units with signed 32-bit
    wrap-around, then the absolute value. Not collision resistant.
    """
    text = canonical_json(dict(query))
    encoded = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))
