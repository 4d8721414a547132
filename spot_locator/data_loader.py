from __future__ import annotations

import csv
import json
import logging
import os
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import requests

from spot_locator.config import Settings

logger = logging.getLogger(__name__)

# Hyderabad sample facilities shown by the map view out of the box.
SAMPLE_SPOTS: list[dict[str, Any]] = [
    {"id": "1", "name": "Kukatpally Parking Zone", "lat": 17.4947, "lng": 78.3996,
     "capacity": 40, "available": 25, "price": "₹40"},
    {"id": "2", "name": "KPHB Colony Parking", "lat": 17.4920, "lng": 78.3972,
     "capacity": 30, "available": 15, "price": "₹30"},
    {"id": "3", "name": "Forum Mall Parking", "lat": 17.4937, "lng": 78.3923,
     "capacity": 120, "available": 50, "price": "₹50"},
    {"id": "4", "name": "Metro Station Parking", "lat": 17.4957, "lng": 78.4008,
     "capacity": 60, "available": 35, "price": "₹20"},
]


def _ring_points(ring: object) -> list[tuple[float, float]]:
    """GeoJSON ring -> [(lon, lat), ...], dropping malformed vertices."""
    if not isinstance(ring, list):
        return []
    return [
        (float(p[0]), float(p[1]))
        for p in ring
        if isinstance(p, (list, tuple)) and len(p) >= 2
    ]


def _ring_centroid_latlon(ring: object) -> tuple[float, float] | None:
    pts = _ring_points(ring)
    if len(pts) < 3:
        return None

    # Area-weighted centroid in lon/lat space; lots are small enough that projection does not matter
    area2 = cx = cy = 0.0
    for (x1, y1), (x2, y2) in zip(pts, pts[1:]):
        cross = x1 * y2 - x2 * y1
        area2 += cross
        cx += (x1 + x2) * cross
        cy += (y1 + y2) * cross

    if abs(area2) < 1e-12:
        # collapsed ring (a line or a repeated point): plain vertex mean
        return (sum(y for _, y in pts) / len(pts), sum(x for x, _ in pts) / len(pts))
    return (cy / (3.0 * area2), cx / (3.0 * area2))


def _geom_to_point_latlon(geom: dict) -> tuple[float, float] | None:
    if not isinstance(geom, dict):
        return None

    gtype = geom.get("type")
    coords = geom.get("coordinates")

    if gtype == "Point" and isinstance(coords, (list, tuple)) and len(coords) >= 2:
        return (float(coords[1]), float(coords[0]))

    if gtype == "Polygon" and isinstance(coords, list) and coords:
        return _ring_centroid_latlon(coords[0])
    if gtype == "MultiPolygon" and isinstance(coords, list) and coords:
        # a lot split into several shapes is placed at its first shape
        first_poly = coords[0]
        if isinstance(first_poly, list) and first_poly:
            return _ring_centroid_latlon(first_poly[0])
    return None


@dataclass(frozen=True)
class LoadResult:
    records: list[dict[str, Any]]
    source: str


def _as_float(v: object) -> float | None:
    """Numbers and numeric strings become floats; blanks, bools and junk become None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    try:
        return float(str(v).strip())
    except ValueError:
        return None


def _as_int(v: object) -> int | None:
    f = _as_float(v)
    return int(f) if f is not None else None


def _parse_price(v: object) -> Decimal | None:
    """'₹40', '$2.50/hr', 3 -> Decimal. Unparseable values come back as None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float, Decimal)):
        return Decimal(str(v))
    m = re.search(r"\d+(?:[.,]\d+)?", str(v))
    if m is None:
        return None
    try:
        return Decimal(m.group(0).replace(",", "."))
    except InvalidOperation:
        return None


def _row_get(row: dict, keys: Iterable[str]) -> object | None:
    for k in keys:
        if k in row and row[k] not in (None, ""):
            return row[k]
    return None


def _normalize_spot(row: dict, idx: int) -> dict[str, Any] | None:
    lat = _as_float(_row_get(row, ["lat", "latitude", "LAT", "Y"]))
    lon = _as_float(_row_get(row, ["lon", "lng", "longitude", "LON", "X"]))
    if lat is None or lon is None:
        return None

    spot_id = str(_row_get(row, ["id", "ID", "objectid", "OBJECTID", "LOT_ID", "spot_id"]) or idx)
    name = _row_get(row, ["name", "NAME", "LOT_NAME", "MAP_LABEL", "label"])

    capacity = _as_int(_row_get(row, ["capacity", "CAPACITY", "total", "spaces"]))
    available = _as_int(_row_get(row, ["available", "AVAILABLE", "free", "vacant"]))
    if available is None:
        available = capacity

    # Range checks are left to SpotRegistry.load so bad feeds are rejected, not patched.
    record: dict[str, Any] = {
        "id": spot_id,
        "name": str(name) if name is not None else f"Parking {spot_id}",
        "point": {"latitude": lat, "longitude": lon},
        "capacity": capacity,
        "available": available,
    }
    price = _parse_price(_row_get(row, ["price_per_hour", "price", "PRICE", "rate", "fee"]))
    if price is not None:
        record["price_per_hour"] = price
    return record


def records_from_rows(rows: Iterable[dict], source: str) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for idx, row in enumerate(rows):
        if not isinstance(row, dict):
            continue
        rec = _normalize_spot(row, idx)
        if rec is None:
            logger.warning("Skipping row %d from %s: no coordinates", idx, source)
            continue
        records.append(rec)
    return records


def records_from_json(obj: Any, source: str) -> list[dict[str, Any]]:
    if isinstance(obj, dict) and "features" in obj:
        # GeoJSON FeatureCollection
        rows: list[dict] = []
        for feat in obj.get("features", []):
            props = feat.get("properties", {}) if isinstance(feat, dict) else {}
            geom = feat.get("geometry", {}) if isinstance(feat, dict) else {}
            row = dict(props or {})

            ll = _geom_to_point_latlon(geom)
            if ll is not None:
                lat, lon = ll
                row.setdefault("lat", lat)
                row.setdefault("lon", lon)
            rows.append(row)
        return records_from_rows(rows, source)

    if isinstance(obj, list):
        return records_from_rows(obj, source)

    raise ValueError(f"Unsupported JSON structure in {source}")


def load_spots_from_file(path: str) -> LoadResult:
    if not os.path.exists(path):
        raise FileNotFoundError(
            f"Parking spot cache file not found: {path}. "
            f"Put a CSV/GeoJSON/JSON file there or set a source URL."
        )

    ext = os.path.splitext(path)[1].lower()
    if ext in (".csv",):
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            return LoadResult(records=records_from_rows(reader, path), source=path)

    if ext in (".json", ".geojson"):
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
        return LoadResult(records=records_from_json(obj, path), source=path)

    raise ValueError(f"Unsupported file extension: {ext} (expected .csv/.json/.geojson)")


def load_spots_from_url(url: str, timeout_s: float = 10.0) -> LoadResult:
    r = requests.get(url, headers={"Accept": "application/json"}, timeout=timeout_s)
    r.raise_for_status()
    return LoadResult(records=records_from_json(r.json(), url), source=url)


def load_sample_spots() -> LoadResult:
    return LoadResult(records=records_from_rows(SAMPLE_SPOTS, "sample"), source="sample")


def load_spots(settings: Settings) -> LoadResult:
    """Source URL if configured, else the local cache file, else the sample set."""
    if settings.spots_source_url:
        return load_spots_from_url(settings.spots_source_url, timeout_s=settings.http_timeout_s)
    if os.path.exists(settings.spots_cache_path):
        return load_spots_from_file(settings.spots_cache_path)
    logger.info("No spot source configured and %s missing; using sample spots", settings.spots_cache_path)
    return load_sample_spots()
