"""
Seed municipality reference data and boundaries from a GeoJSON file.

Each feature's ``properties`` must carry ``code``, ``name`` and
``province``; ``population``, ``classification``, ``address``,
``website``, ``phone``, ``district_id`` and ``district_name`` are
optional. The feature geometry, when present, is stored as the
municipality boundary. Re-running the script updates rows in place.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from db.models.municipal_geometry import MunicipalGeometry
from db.models.municipality import Municipality
from db.session import SessionLocal

logger = logging.getLogger(__name__)

_OPTIONAL_FIELDS = (
    "classification",
    "address",
    "website",
    "phone",
    "district_id",
    "district_name",
)


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_population(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def seed_features(session: Session, features: list[dict[str, Any]]) -> dict[str, int]:
    """
    Upsert municipalities and geometries. The caller commits.
    """
    summary = {"upserted": 0, "skipped": 0, "geometries": 0}
    for index, feature in enumerate(features):
        properties = feature.get("properties") or {}
        code = _clean_str(properties.get("code"))
        name = _clean_str(properties.get("name"))
        province = _clean_str(properties.get("province"))
        if not code or not name or not province:
            logger.warning("Skipping feature index=%d: code, name and province are required", index)
            summary["skipped"] += 1
            continue

        municipality = session.get(Municipality, code.upper())
        if municipality is None:
            municipality = Municipality(code=code.upper(), name=name, province=province)
            session.add(municipality)
        municipality.name = name
        municipality.province = province
        municipality.population = _parse_population(properties.get("population"))
        for field_name in _OPTIONAL_FIELDS:
            setattr(municipality, field_name, _clean_str(properties.get(field_name)))

        geometry = feature.get("geometry")
        if isinstance(geometry, dict) and geometry.get("type"):
            if municipality.geometry is None:
                municipality.geometry = MunicipalGeometry(geometry=geometry)
            else:
                municipality.geometry.geometry = geometry
            summary["geometries"] += 1

        summary["upserted"] += 1
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed municipalities from a GeoJSON FeatureCollection.")
    parser.add_argument("path", type=Path, help="Path to the GeoJSON file.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    payload = json.loads(args.path.read_text(encoding="utf-8"))
    if payload.get("type") != "FeatureCollection" or not isinstance(payload.get("features"), list):
        parser.error(f"{args.path} is not a GeoJSON FeatureCollection")

    with SessionLocal() as db:
        summary = seed_features(db, payload["features"])
        db.commit()

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
