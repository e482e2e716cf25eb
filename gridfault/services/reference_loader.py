"""
Reference data loader: seeds regions and districts.

Input shape (JSON):
    {
      "regions": [
        {"id": "r-ae", "name": "Accra East",
         "districts": [{"id": "d-legon", "name": "Legon"}, ...]},
        ...
      ]
    }

Idempotent: ids already present are skipped, never overwritten.
"""

import json
import logging

from gridfault.core.exceptions import InvalidDataError
from gridfault.models import db
from gridfault.models.reference import District, Region

logger = logging.getLogger(__name__)


def seed_reference_data(data: dict) -> tuple[int, int]:
    """Insert missing regions/districts. Returns (regions_added, districts_added)."""
    regions = data.get("regions") if isinstance(data, dict) else None
    if not isinstance(regions, list):
        raise InvalidDataError("Reference data must contain a 'regions' list")

    try:
        regions_added, districts_added = _seed_regions(regions)
    except InvalidDataError:
        db.session.rollback()
        raise

    db.session.commit()
    logger.info("Reference data seeded: %d regions, %d districts", regions_added, districts_added)
    return regions_added, districts_added


def load_reference_file(path: str) -> tuple[int, int]:
    with open(path, encoding="utf-8") as fh:
        return seed_reference_data(json.load(fh))


def _seed_regions(regions: list) -> tuple[int, int]:
    regions_added = districts_added = 0
    for entry in regions:
        if not isinstance(entry, dict) or not entry.get("id") or not entry.get("name"):
            raise InvalidDataError("Each region needs id and name", details={"region": entry})
        region_id = entry["id"]
        if db.session.get(Region, region_id) is None:
            db.session.add(Region(id=region_id, name=entry["name"]))
            regions_added += 1

        districts = entry.get("districts", [])
        if not isinstance(districts, list):
            raise InvalidDataError("'districts' must be a list", details={"region": region_id})
        for d in districts:
            if not isinstance(d, dict) or not d.get("id") or not d.get("name"):
                raise InvalidDataError(
                    "Each district needs id and name", details={"region": region_id, "district": d},
                )
            existing = db.session.get(District, d["id"])
            if existing is None:
                db.session.add(District(id=d["id"], name=d["name"], region_id=region_id))
                districts_added += 1
            elif existing.region_id != region_id:
                logger.warning(
                    "District %s already belongs to region %s, not %s; left unchanged",
                    d["id"], existing.region_id, region_id,
                )
    return regions_added, districts_added
