"""
Body Fat Correction Service
============================
Corrects the raw bioimpedance body fat % and rebalances every dependent
mass so that the corrected record stays physically consistent.

ALGORITHM:
  A. Bucket — the subject is classified into one of four body types using
     structural indicators only (BMI, FFMI, muscle/weight ratio, visceral
     level), never the raw BF% itself. A valid stored body type overrides
     the classifier.

  B. Adjustment — a fixed delta per bucket is added to the raw BF%:
       athlete_very_lean  −4.5
       lean               −3.5
       normal              0.0
       overweight         +3.5
     The result is clamped to male [3, 60] / female [10, 60].

  C. Rebalancing:
       fat_mass_new = weight × bf_corrected / 100
       ffm_new      = weight − fat_mass_new
       k            = ffm_new / ffm_old
     Muscle mass and every FFM component are multiplied by k, so each keeps
     its share of FFM while the totals add up to body weight again.

  D. Mutation — applied on copies of the items; weight and visceral level
     are never touched. Every written value is rounded to 2 decimals.

The function never raises on bad input. When the correction cannot run it
returns `applied=False` and an unchanged copy of the items.
"""

import copy
import logging
import re

from pydantic import ValidationError

from bodycomp.core.config import DEFAULT_TABLES, CorrectionTables
from bodycomp.schemas import (
    Bucket,
    CorrectionResult,
    MeasurementItem,
    MetricBundle,
    Role,
    Sex,
    round2,
)
from bodycomp.services.metric_extractor import (
    collect_metrics,
    derive_metrics,
    positive_or_none,
)
from bodycomp.services.roles import resolve_role

logger = logging.getLogger(__name__)


# ============================================================
# A. CLASSIFICATION
# ============================================================

def _at_least(value: float | None, threshold: float) -> bool:
    return value is not None and value >= threshold


def _below(value: float | None, threshold: float) -> bool:
    return value is not None and value < threshold


def classify(metrics: MetricBundle, sex: int) -> Bucket:
    """
    Classify a subject into a bucket from structural indicators only.

    Rules are evaluated top to bottom and the first match wins. A rule that
    compares an unknown indicator (None) does not match, except where a rule
    explicitly allows "or unknown".

    Args:
        metrics: Bundle from the extractor (weight in kg, height in m)
        sex: 1 = male, 2 = female (anything else is treated as male)

    Returns:
        The body-type bucket; "normal" when weight or height is missing
    """
    bmi = metrics.bmi
    if bmi is None:
        return Bucket.NORMAL

    ffmi = metrics.ffmi
    muscle = metrics.muscle_ratio
    visceral = metrics.visceral

    if sex == Sex.FEMALE:
        if (
            bmi < 26
            and _at_least(ffmi, 17.5)
            and _at_least(muscle, 65)
            and (visceral is None or visceral <= 11)
        ):
            return Bucket.LEAN
        if (
            bmi < 25
            and _at_least(ffmi, 17.0)
            and _at_least(muscle, 68)
            and (visceral is None or visceral <= 9)
        ):
            return Bucket.ATHLETE_VERY_LEAN
        if bmi >= 30 or _at_least(visceral, 12) or _below(muscle, 60):
            return Bucket.OVERWEIGHT
        return Bucket.NORMAL

    if (
        bmi < 25
        and _at_least(ffmi, 18.5)
        and _at_least(muscle, 70)
        and (visceral is None or visceral <= 9)
    ):
        return Bucket.ATHLETE_VERY_LEAN
    if (
        bmi < 26
        and _at_least(ffmi, 17.0)
        and _below(ffmi, 18.5)
        and _at_least(muscle, 68)
        and (visceral is None or visceral <= 11)
    ):
        return Bucket.LEAN
    if bmi >= 30 or _at_least(visceral, 12) or _below(muscle, 65):
        return Bucket.OVERWEIGHT
    if (
        20 <= bmi <= 29
        and (ffmi is None or ffmi < 17.5)
        and (visceral is None or 8 <= visceral <= 12)
    ):
        return Bucket.NORMAL
    return Bucket.NORMAL


def normalize_body_type(value) -> Bucket | None:
    """
    Normalize a stored body type ("Athlete very lean" → athlete_very_lean).
    Returns None if it does not name one of the four buckets.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    normalized = re.sub(r"\s+", "_", text.lower())
    try:
        return Bucket(normalized)
    except ValueError:
        return None


def resolve_bucket(
    metrics: MetricBundle,
    sex: int,
    user_body_type=None,
    tables: CorrectionTables = DEFAULT_TABLES,
) -> tuple[Bucket, str]:
    """
    Pick the bucket for this measurement.

    Returns:
        (bucket, source) where source is "override", "classified" or "default"
    """
    override = normalize_body_type(user_body_type)
    if override is not None:
        return override, "override"

    if user_body_type is not None and str(user_body_type).strip():
        logger.debug(f"Ignoring unknown body type override: {user_body_type!r}")
        if tables.invalid_override_policy == "normal":
            return Bucket.NORMAL, "default"

    return classify(metrics, sex), "classified"


# ============================================================
# B. ADJUSTMENT
# ============================================================

def clamp(value: float, minimum: float | None, maximum: float | None) -> float:
    if minimum is not None and value < minimum:
        return minimum
    if maximum is not None and value > maximum:
        return maximum
    return value


def bf_bounds(sex: int, tables: CorrectionTables = DEFAULT_TABLES) -> tuple[float, float]:
    """Inclusive (min, max) corrected BF% for the given sex code."""
    return tables.bf_bounds["female" if sex == Sex.FEMALE else "male"]


def _adjusted_body_fat(
    bf_raw: float,
    bucket: Bucket,
    sex: int,
    tables: CorrectionTables = DEFAULT_TABLES,
    previous_bf: float | None = None,
) -> float:
    adjusted = bf_raw + tables.bf_adjustment.get(bucket.value, 0.0)

    max_change = tables.max_daily_bf_change
    if previous_bf is not None and max_change is not None:
        adjusted = clamp(adjusted, previous_bf - max_change, previous_bf + max_change)

    low, high = bf_bounds(sex, tables)
    return clamp(adjusted, low, high)


def corrected_body_fat(
    bf_raw: float,
    bucket: Bucket,
    sex: int,
    tables: CorrectionTables = DEFAULT_TABLES,
    previous_bf: float | None = None,
) -> float:
    """
    raw BF% + bucket delta, limited against the previous value (if given),
    then clamped to the sex-specific bounds. Rounded to 2 decimals.
    """
    return round2(_adjusted_body_fat(bf_raw, bucket, sex, tables, previous_bf))


# ============================================================
# C + D. REBALANCING AND MUTATION
# ============================================================

def coerce_item(entry, index: int = 0):
    """
    Validate one body data entry.

    Returns a MeasurementItem, or a shallow copy of the entry when it cannot
    be read as one. Such entries take no part in the correction and are
    written back unchanged.
    """
    if isinstance(entry, MeasurementItem):
        return entry
    try:
        return MeasurementItem.model_validate(entry)
    except ValidationError as exc:
        logger.warning(
            f"Body data item #{index} is not a valid item, passing it through: "
            f"{exc.error_count()} validation error(s)"
        )
        return copy.copy(entry)


def apply_correction(
    items: list[MeasurementItem],
    height_cm: float | None,
    weight_kg: float | None,
    sex: int,
    user_body_type: str | None = None,
    previous_bf: float | None = None,
    tables: CorrectionTables = DEFAULT_TABLES,
) -> CorrectionResult:
    """
    Classify, correct BF% and rebalance all masses on a copy of the items.

    Args:
        items: Raw body data items from the scale
        height_cm: Height in cm (request or stored profile)
        weight_kg: Weight in kg, the source of truth for the record. When None,
            the weight item in `items` is used instead.
        sex: 1 = male, 2 = female
        user_body_type: Optional stored body type that overrides classification
        previous_bf: Optional last corrected BF%, enables the daily change limit

    Returns:
        CorrectionResult. Check `applied` before trusting any mutated value.
    """
    result = CorrectionResult()
    if not isinstance(items, (list, tuple)) or len(items) == 0:
        return result

    entries = [coerce_item(entry, index) for index, entry in enumerate(items)]
    result.mutated_items = [
        entry.model_copy() if isinstance(entry, MeasurementItem) else entry
        for entry in entries
    ]
    source_items = [entry for entry in entries if isinstance(entry, MeasurementItem)]

    raw = collect_metrics(source_items, tables)
    weight = positive_or_none(weight_kg) if weight_kg is not None else raw.weight
    height = positive_or_none(height_cm)
    metrics = derive_metrics(
        raw.model_copy(update={
            "weight": weight,
            "height": height / 100 if height is not None else None,
        })
    )

    bf_raw = metrics.bf_pct
    fat_mass_old = metrics.fat_mass

    if weight is None or (bf_raw is None and fat_mass_old is None):
        logger.info("🔄 Body fat correction skipped (missing weight or BF/fat mass)")
        return result

    bucket, source = resolve_bucket(metrics, sex, user_body_type, tables)
    result.bucket = bucket
    result.bucket_source = source

    if bf_raw is None:
        bf_raw = fat_mass_old / weight * 100
    adjustment = tables.bf_adjustment.get(bucket.value, 0.0)
    # masses are derived from the unrounded value; rounding happens on write
    bf_corrected = _adjusted_body_fat(bf_raw, bucket, sex, tables, previous_bf)
    result.adjustment = adjustment
    result.bf_corrected = round2(bf_corrected)

    fat_mass_new = weight * bf_corrected / 100
    ffm_new = weight - fat_mass_new

    if metrics.ffm is not None:
        ffm_old = metrics.ffm
    elif fat_mass_old is not None:
        ffm_old = weight - fat_mass_old
    else:
        ffm_old = weight - weight * bf_raw / 100

    if ffm_old <= 0:
        logger.info(f"🔄 Body fat correction skipped (invalid FFM_old={ffm_old:.2f})")
        return result

    k = ffm_new / ffm_old

    logger.info(
        f"🔄 Body fat correction: weight={weight}kg, bf_raw={bf_raw:.2f}%, "
        f"fat_mass_raw={fat_mass_old:.2f}kg, "
        f"ffm_raw={ffm_old:.2f}kg, bucket={bucket.value} ({source}), "
        f"override={user_body_type or '(none)'}"
    )
    logger.info(
        f"🔄 Adjustment {adjustment:+.1f}% → bf={bf_corrected:.2f}%, "
        f"fat_mass_new={fat_mass_new:.2f}kg, ffm_new={ffm_new:.2f}kg, k={k:.4f}"
    )

    counts = {"bodyFatPct": 0, "fatMass": 0, "ffm": 0, "ffmComponent": 0}
    mutated = []
    for item in result.mutated_items:
        if not isinstance(item, MeasurementItem):
            mutated.append(item)
            continue
        value = item.numeric_value
        role = resolve_role(item.key, tables)

        if value is None:
            mutated.append(item)
        elif role == Role.BODY_FAT_PCT:
            mutated.append(item.with_value(bf_corrected))
            counts["bodyFatPct"] += 1
        elif role == Role.FAT_MASS:
            mutated.append(item.with_value(fat_mass_new))
            counts["fatMass"] += 1
        elif role == Role.FFM:
            mutated.append(item.with_value(ffm_new))
            counts["ffm"] += 1
        elif role in (Role.MUSCLE_MASS, Role.FFM_COMPONENT):
            mutated.append(item.with_value(value * k))
            counts["ffmComponent"] += 1
        else:
            # weight, visceral level (not a mass) and unknown keys
            mutated.append(item)

    logger.info(f"🔄 Body fat correction applied: {counts}")

    result.mutated_items = mutated
    result.fat_mass_new = round2(fat_mass_new)
    result.ffm_new = round2(ffm_new)
    result.scaling_factor = k
    result.mutation_counts = counts
    result.applied = True
    return result
