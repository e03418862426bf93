"""
Metric Extraction Service
==========================
Turns a flat list of body data items into a `MetricBundle`: weight, height,
body fat %, fat mass, fat-free mass (FFM), muscle mass and visceral level.

Accumulation rules per role:
  - weight:                      first value wins
  - bodyFatPct, fatMass, ffm,
    visceral:                    last value wins
  - muscleMass:                  first non-null value wins
  - ffmComponent:                not accumulated (only rescaled later)

Derivation pass (only when weight > 0), in this order:
  1. ffm      = weight - fat_mass         (fat mass known, FFM missing)
  2. fat_mass = weight - ffm              (FFM known, fat mass missing)
  3. fat_mass = weight * bf_pct / 100     (BF% known, fat mass still missing)
  4. bf_pct   = fat_mass / weight * 100   (fat mass known, BF% still missing)

Missing data never raises; the bundle just carries None.
"""

import logging
import math

from bodycomp.core.config import DEFAULT_TABLES, CorrectionTables
from bodycomp.schemas import MeasurementItem, MetricBundle, Role
from bodycomp.services.roles import is_muscle_key, resolve_role

logger = logging.getLogger(__name__)


def positive_or_none(value) -> float | None:
    """Coerce to a finite, positive float; anything else is treated as absent."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def collect_metrics(
    items: list[MeasurementItem],
    tables: CorrectionTables = DEFAULT_TABLES,
) -> MetricBundle:
    """
    First pass: read role values straight from the items (no derivation).
    Height is never present in items, so it stays None here.
    """
    weight = None
    bf_pct = None
    fat_mass = None
    ffm = None
    muscle_mass = None
    visceral = None

    for item in items:
        value = item.numeric_value
        if value is None:
            continue

        role = resolve_role(item.key, tables)
        if role == Role.WEIGHT:
            if weight is None:
                weight = value
        elif role == Role.BODY_FAT_PCT:
            bf_pct = value
        elif role == Role.FAT_MASS:
            fat_mass = value
        elif role == Role.FFM:
            ffm = value
        elif role == Role.VISCERAL:
            visceral = value
        elif role == Role.MUSCLE_MASS:
            if muscle_mass is None:
                muscle_mass = value

    # Backfill muscle mass from any muscle-keyed item the role pass skipped
    if muscle_mass is None:
        for item in items:
            if is_muscle_key(item.key, tables) and item.numeric_value is not None:
                muscle_mass = item.numeric_value
                break

    return MetricBundle(
        weight=positive_or_none(weight),
        bf_pct=bf_pct,
        fat_mass=fat_mass,
        ffm=ffm,
        muscle_mass=muscle_mass,
        visceral=visceral,
    )


def derive_metrics(bundle: MetricBundle) -> MetricBundle:
    """Fill in whichever of fat mass / FFM / BF% can be derived from weight."""
    weight = bundle.weight
    if weight is None or weight <= 0:
        return bundle

    fat_mass = bundle.fat_mass
    ffm = bundle.ffm
    bf_pct = bundle.bf_pct

    if fat_mass is not None and ffm is None:
        ffm = weight - fat_mass
    if ffm is not None and fat_mass is None:
        fat_mass = weight - ffm
    if bf_pct is not None and fat_mass is None:
        fat_mass = weight * bf_pct / 100
    if fat_mass is not None and bf_pct is None:
        bf_pct = fat_mass / weight * 100

    return bundle.model_copy(update={"fat_mass": fat_mass, "ffm": ffm, "bf_pct": bf_pct})


def extract_metrics(
    items: list[MeasurementItem],
    weight_override: float | None = None,
    height_cm_override: float | None = None,
    tables: CorrectionTables = DEFAULT_TABLES,
) -> MetricBundle:
    """
    Build the metric bundle for one measurement.

    Args:
        items: Body data items (possibly empty)
        weight_override: Weight in kg from the request or profile; used only
            when no weight item is present
        height_cm_override: Height in cm from the request or profile

    Returns:
        MetricBundle with height in meters and derived masses filled in
    """
    if not isinstance(items, (list, tuple)):
        items = []

    bundle = collect_metrics(items, tables)

    height_cm = positive_or_none(height_cm_override)
    update = {"height": height_cm / 100 if height_cm is not None else None}
    if bundle.weight is None:
        update["weight"] = positive_or_none(weight_override)

    bundle = derive_metrics(bundle.model_copy(update=update))

    logger.debug(
        f"Extracted metrics: weight={bundle.weight}, height={bundle.height}, "
        f"bf_pct={bundle.bf_pct}, fat_mass={bundle.fat_mass}, ffm={bundle.ffm}, "
        f"muscle={bundle.muscle_mass}, visceral={bundle.visceral}"
    )
    return bundle
