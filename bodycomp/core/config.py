"""
Application Configuration
=========================
Two layers of configuration live here:

  1. `Settings` — pydantic-settings object loaded from environment variables
     (prefix BODYCOMP_) and an optional .env file. These are the knobs an
     operator can turn without touching code.
  2. `CorrectionTables` — the static lookup tables the correction algorithm
     runs on (param-key → role mapping, bucket → BF% delta, BF% bounds).
     They are built once at import time and never mutated afterwards.

Every service function takes `tables=DEFAULT_TABLES` as a keyword argument,
so tests can pass their own tables instead of patching globals.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process settings loaded from environment variables.
    Example: BODYCOMP_ROLE_MATCH_MODE=pattern
    """

    APP_NAME: str = "Body Composition Correction"
    APP_VERSION: str = "1.0.0"

    LOG_LEVEL: str = "INFO"

    # "exact": vendor keys must match the exact-key table (deterministic).
    # "pattern": substring match, for looser API vocabularies.
    ROLE_MATCH_MODE: Literal["exact", "pattern"] = "exact"

    # What to do when the stored user_body_type is not a known bucket:
    # "classify" runs the structural classifier, "normal" forces the normal bucket.
    INVALID_OVERRIDE_POLICY: Literal["classify", "normal"] = "classify"

    # Max change in corrected BF% versus the previous measurement.
    # Only used when the caller supplies the previous value. Unset to disable.
    MAX_DAILY_BF_CHANGE: float | None = 1.0

    model_config = SettingsConfigDict(
        env_prefix="BODYCOMP_", env_file=".env", extra="ignore"
    )


# ============================================================
# STATIC CORRECTION TABLES
# ============================================================

# Exact param keys as returned by the scale vendor API (lefuBodyData).
EXACT_KEYS: dict[str, tuple[str, ...]] = {
    "weight": ("ppWeightKg",),
    "fatMass": ("ppBodyfatKg",),
    "bodyFatPct": ("ppFat",),
    "ffm": ("ppLoseFatWeightKg",),
    "visceral": ("ppVisceralFat",),
    "muscleMass": ("ppMuscleKg",),
    # Fat-free mass components, scaled by k
    "ffmComponent": (
        "ppWaterKg",
        "ppProteinKg",
        "ppBoneKg",
        "ppBodySkeletalKg",
        "ppCellMassKg",
        "ppRightArmMuscleKg",
        "ppLeftArmMuscleKg",
        "ppTrunkMuscleKg",
        "ppRightLegMuscleKg",
        "ppLeftLegMuscleKg",
    ),
}

# Substring patterns (lowercase). Dict order is the resolution order:
# fat mass is checked before body-fat % so "ppBodyfatKg" reads as a mass.
KEY_PATTERNS: dict[str, tuple[str, ...]] = {
    "fatMass": ("fatmass", "fat_mass", "ppfatmass", "bodyfatkg"),
    "bodyFatPct": ("bodyfat", "body_fat", "bfpct", "fatpct", "ppbodyfat", "bf_percent", "ppfat"),
    "ffm": ("ffm", "fatfreemass", "fat_free_mass", "ppffm", "losefatweight"),
    "visceral": ("visceral", "visceralfat", "ppvisceral"),
    "weight": ("weight", "weightkg", "ppweight"),
    "muscleMass": ("muscle", "skeletal", "musclemass", "skeletalmuscle", "ppmuscle", "ppmusclemass"),
    "ffmComponent": (
        # Total body water
        "tbw", "water", "bodywater", "totalbodywater", "pptbw",
        "protein", "ppprotein",
        "mineral", "bone", "ppmineral", "ppbone",
        "bmr", "basal", "ppbmr",
        # Segmental lean (arms, legs, trunk)
        "arm", "leg", "trunk", "segmental", "leanarm", "leanleg", "leantrunk",
    ),
}

# Body fat % adjustment by bucket (delta added to raw BF%).
BF_ADJUSTMENT: dict[str, float] = {
    "athlete_very_lean": -4.5,
    "lean": -3.5,
    "normal": 0.0,
    "overweight": 3.5,
}

# Safety bounds (inclusive) for corrected BF%.
BF_BOUNDS: dict[str, tuple[float, float]] = {
    "male": (3.0, 60.0),
    "female": (10.0, 60.0),
}


class CorrectionTables(BaseModel):
    """
    Read-only configuration for one correction run.
    Frozen so a shared instance can be used from any thread.
    """

    exact_keys: dict[str, tuple[str, ...]] = EXACT_KEYS
    key_patterns: dict[str, tuple[str, ...]] = KEY_PATTERNS
    bf_adjustment: dict[str, float] = BF_ADJUSTMENT
    bf_bounds: dict[str, tuple[float, float]] = BF_BOUNDS
    match_mode: Literal["exact", "pattern"] = "exact"
    invalid_override_policy: Literal["classify", "normal"] = "classify"
    max_daily_bf_change: float | None = 1.0

    model_config = ConfigDict(frozen=True)


def build_tables(source: Settings) -> CorrectionTables:
    """Build the correction tables, taking the tunable parts from settings."""
    return CorrectionTables(
        match_mode=source.ROLE_MATCH_MODE,
        invalid_override_policy=source.INVALID_OVERRIDE_POLICY,
        max_daily_bf_change=source.MAX_DAILY_BF_CHANGE,
    )


# Singleton instances — import these everywhere you need configuration
settings = Settings()
DEFAULT_TABLES = build_tables(settings)
