"""
Record Correction Service
==========================
Adapter between a scale record (as the vendor API returns it) and the
correction core.

A record looks like:
    {
      "weightKg": 70, "height": 170, "sex": 1,
      "data": {"lefuBodyData": [{"bodyParamKey": "ppFat", "currentValue": 22.0, ...}, ...]}
    }

Subject parameters missing from the record are taken from the stored
profile. Both the raw items and the corrected items are returned, because
storage keeps them as two separate records.
"""

import logging
from typing import Any

from bodycomp.core.config import DEFAULT_TABLES, CorrectionTables
from bodycomp.schemas import CorrectionResult, MeasurementItem, SubjectProfile
from bodycomp.services.corrector import apply_correction, coerce_item

logger = logging.getLogger(__name__)


def _first_present(record: dict, *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def body_data_from_record(record: dict) -> list[MeasurementItem | Any]:
    """
    Pull the body data items out of a record and validate them.
    Entries that fail validation stay in place, unchanged, so the stored
    record never loses data.
    """
    data = record.get("data") if isinstance(record.get("data"), dict) else {}
    raw_items = (
        data.get("lefuBodyData")
        or data.get("lefu_body_data")
        or record.get("lefuBodyData")
        or record.get("lefu_body_data")
        or []
    )
    if not isinstance(raw_items, list):
        logger.warning(f"Body data is not a list ({type(raw_items).__name__}), ignoring")
        return []

    return [coerce_item(raw, index) for index, raw in enumerate(raw_items)]


def correct_record(
    record: dict,
    profile: SubjectProfile | None = None,
    tables: CorrectionTables = DEFAULT_TABLES,
) -> tuple[list[MeasurementItem | Any], CorrectionResult]:
    """
    Run the body fat correction on one scale record.

    Args:
        record: Record dict with body data and optional weight/height/sex
        profile: Stored subject profile used for anything the record lacks

    Returns:
        (raw_items, result) — raw_items are the validated, unmodified entries
    """
    profile = profile or SubjectProfile()
    items = body_data_from_record(record)

    weight_kg = _first_present(record, "weightKg", "weight_kg", "weight")
    if weight_kg is None:
        weight_kg = profile.weight_kg
    height_cm = _first_present(record, "height", "heightCm", "height_cm")
    if height_cm is None:
        height_cm = profile.height_cm
    sex = _first_present(record, "sex")
    if sex is None:
        sex = profile.sex

    try:
        sex = int(sex)
    except (TypeError, ValueError):
        logger.warning(f"Unknown sex code {sex!r}, treating as male")
        sex = 1

    logger.info(
        f"Correcting record: {len(items)} items, weight={weight_kg}, "
        f"height={height_cm}, sex={sex}, body_type={profile.user_body_type}"
    )

    result = apply_correction(
        items,
        height_cm=height_cm,
        weight_kg=weight_kg,
        sex=sex,
        user_body_type=profile.user_body_type,
        previous_bf=profile.previous_bf,
        tables=tables,
    )
    return items, result
