# family_events/geo/spatial_filter.py
"""
Place records on the map and drop the ones that are too far away.

Policy:
  - no address and no location_name   → dropped (cannot be placed)
  - resolved, distance > radius        → dropped (fail-closed)
  - resolved, distance <= radius       → kept with coordinates
  - not resolved (miss / error)        → kept WITHOUT coordinates (fail-open);
                                         scoring penalizes the unknown distance
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ..config import MAX_DISTANCE_KM
from ..models import GeoRecord, RawRecord
from .geocoding import SpatialResolver

logger = logging.getLogger(__name__)


@dataclass
class SpatialFilterResult:
    records: list[GeoRecord] = field(default_factory=list)
    resolved: int = 0
    unresolved: int = 0
    dropped_no_location: int = 0
    dropped_out_of_radius: int = 0


def filter_by_location(
    records: Sequence[RawRecord],
    resolver: SpatialResolver,
    *,
    max_distance_km: float = MAX_DISTANCE_KM,
) -> SpatialFilterResult:
    out = SpatialFilterResult()

    for rec in records:
        address = rec.location_text
        if not address:
            out.dropped_no_location += 1
            logger.info("[spatial] DROP no location | title=%r source=%s", rec.title, rec.source)
            continue

        try:
            resolution = resolver.resolve(address)
        except Exception as e:
            logger.warning(
                "[spatial] resolve error, keeping without coordinates | title=%r: %s: %s",
                rec.title, type(e).__name__, e,
            )
            resolution = None

        if resolution is None:
            out.unresolved += 1
            logger.info("[spatial] UNRESOLVED keep | title=%r address=%r", rec.title, address)
            out.records.append(GeoRecord.from_raw(rec))
            continue

        if resolution.distance_km > max_distance_km:
            out.dropped_out_of_radius += 1
            logger.info(
                "[spatial] DROP too far distance_km=%.1f max=%.1f | title=%r",
                resolution.distance_km, max_distance_km, rec.title,
            )
            continue

        out.resolved += 1
        out.records.append(
            GeoRecord.from_raw(
                rec,
                latitude=resolution.latitude,
                longitude=resolution.longitude,
                distance_from_origin=resolution.distance_km,
            )
        )

    return out
