"""
Pydantic V2 Schemas
====================
Data shapes that flow in and out of the correction core.

The scale vendor returns body data items in two casings depending on the
endpoint (camelCase `bodyParamKey` / `currentValue` from the API,
snake_case `body_param_key` / `current_value` from our own storage).
`MeasurementItem` accepts both and exposes one canonical shape; the
`dump_items` helper writes them back out in whichever casing is needed.
"""

import math
from enum import Enum, IntEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    """Semantic role of a measurement item, resolved from its param key."""
    WEIGHT = "weight"
    BODY_FAT_PCT = "bodyFatPct"
    FAT_MASS = "fatMass"
    FFM = "ffm"
    VISCERAL = "visceral"
    MUSCLE_MASS = "muscleMass"
    FFM_COMPONENT = "ffmComponent"
    NONE = "none"


class Bucket(str, Enum):
    """Body-type bucket. Values must match the storage enum exactly."""
    ATHLETE_VERY_LEAN = "athlete_very_lean"
    LEAN = "lean"
    NORMAL = "normal"
    OVERWEIGHT = "overweight"


class Sex(IntEnum):
    MALE = 1
    FEMALE = 2


def round2(value: float) -> float:
    """Round to 2 decimal places so long floats never reach storage."""
    return round(value, 2)


# ============================================================
# MEASUREMENT ITEM
# ============================================================

class MeasurementItem(BaseModel):
    """
    One labeled value from the scale (e.g. key="ppFat", value=22.4, unit="%").

    Only `key` and `value` matter to the correction; every other field is
    descriptive metadata that must survive untouched, so it is typed `Any`
    (the vendor sends numbers and strings interchangeably). Unknown fields are
    kept as extras.
    """
    key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "key", "bodyParamKey", "body_param_key", "bodyParam", "body_param"
        ),
    )
    value: int | float | str | None = Field(
        default=None,
        validation_alias=AliasChoices("value", "currentValue", "current_value"),
    )
    name: Any = Field(
        default=None,
        validation_alias=AliasChoices("name", "bodyParamName", "body_param_name"),
    )
    unit: Any = None
    standard_title: Any = Field(
        default=None, validation_alias=AliasChoices("standard_title", "standardTitle")
    )
    current_standard: Any = Field(
        default=None, validation_alias=AliasChoices("current_standard", "currentStandard")
    )
    stand_color: Any = Field(
        default=None, validation_alias=AliasChoices("stand_color", "standColor")
    )
    color_array: Any = Field(
        default=None, validation_alias=AliasChoices("color_array", "colorArray")
    )
    standard_array: Any = Field(
        default=None, validation_alias=AliasChoices("standard_array", "standardArray")
    )
    standard_title_array: Any = Field(
        default=None,
        validation_alias=AliasChoices("standard_title_array", "standardTitleArray"),
    )
    introduction: Any = None
    stand_suggestion: Any = Field(
        default=None, validation_alias=AliasChoices("stand_suggestion", "standSuggestion")
    )
    stand_evaluation: Any = Field(
        default=None, validation_alias=AliasChoices("stand_evaluation", "standEvaluation")
    )

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    @property
    def numeric_value(self) -> float | None:
        """The value as a finite float, or None if it is missing or not numeric."""
        if self.value is None or isinstance(self.value, bool):
            return None
        try:
            number = float(self.value)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None

    def with_value(self, value: float) -> "MeasurementItem":
        """Copy of this item with a new (rounded) value; metadata is unchanged."""
        return self.model_copy(update={"value": round2(value)})


def dump_items(
    items: list[MeasurementItem | Any],
    casing: Literal["camel", "snake"] = "camel",
) -> list:
    """
    Serialize items for an external consumer.

    camel → {"bodyParamKey", "currentValue", "bodyParamName", "standardTitle", ...}
    snake → {"body_param_key", "current_value", "body_param_name", "standard_title", ...}

    Elements that are not MeasurementItems (entries that never validated) are
    written back as they came in.
    """
    dumped = []
    for item in items:
        if not isinstance(item, MeasurementItem):
            dumped.append(item)
            continue
        data = item.model_dump(exclude_unset=True)
        data.update(item.model_extra or {})
        out = {}
        for field, value in data.items():
            external = _EXTERNAL_NAMES.get(field, field)
            out[to_camel(external) if casing == "camel" else external] = value
        dumped.append(out)
    return dumped


# Canonical field → snake_case external name (camelCase is derived from it)
_EXTERNAL_NAMES = {
    "key": "body_param_key",
    "value": "current_value",
    "name": "body_param_name",
}


# ============================================================
# METRIC BUNDLE
# ============================================================

class MetricBundle(BaseModel):
    """
    Normalized metrics extracted from one item list.
    weight/fat_mass/ffm/muscle_mass in kg, height in meters, bf_pct in %.
    """
    weight: float | None = None
    height: float | None = None
    bf_pct: float | None = None
    fat_mass: float | None = None
    ffm: float | None = None
    muscle_mass: float | None = None
    visceral: float | None = None

    @property
    def bmi(self) -> float | None:
        if not self.weight or not self.height or self.weight <= 0 or self.height <= 0:
            return None
        return self.weight / (self.height * self.height)

    @property
    def ffmi(self) -> float | None:
        """Fat-free mass index: FFM / height²."""
        if self.ffm is None or self.ffm <= 0 or not self.height or self.height <= 0:
            return None
        return self.ffm / (self.height * self.height)

    @property
    def muscle_ratio(self) -> float | None:
        """Muscle mass as a percentage of body weight."""
        if self.muscle_mass is None or not self.weight or self.weight <= 0:
            return None
        return self.muscle_mass / self.weight * 100


# ============================================================
# CORRECTION RESULT
# ============================================================

class CorrectionResult(BaseModel):
    """
    Output of apply_correction.

    `applied=False` means the correction could not run; `mutated_items` is
    then an unchanged copy of the input and must be stored as-is.
    Input entries that are not valid items are carried through untouched at
    their original position.
    """
    mutated_items: list[MeasurementItem | Any] = []
    bucket: Bucket = Bucket.NORMAL
    bf_corrected: float | None = None
    applied: bool = False

    # Diagnostics (not needed by storage, useful for audits and tests)
    bucket_source: Literal["override", "classified", "default"] = "default"
    adjustment: float | None = None
    fat_mass_new: float | None = None
    ffm_new: float | None = None
    scaling_factor: float | None = None
    mutation_counts: dict[str, int] = Field(default_factory=dict)


class SubjectProfile(BaseModel):
    """
    Stored profile of the person on the scale, used when the record itself
    does not carry height / weight / sex.
    """
    height_cm: float | None = Field(default=None, gt=0)
    weight_kg: float | None = Field(default=None, gt=0)
    sex: int = Sex.MALE
    user_body_type: str | None = None
    previous_bf: float | None = Field(
        default=None, description="Last stored corrected BF%, enables the daily change limit"
    )
