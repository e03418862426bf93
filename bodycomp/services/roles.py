"""
Param Key → Role Resolution
============================
Each body data item carries a vendor param key (e.g. "ppFat", "ppMuscleKg").
The correction only cares about what the item *is*: its role.

Two matching modes, chosen by `tables.match_mode`:
  - exact:   key must appear verbatim in the exact-key table.
  - pattern: lowercase key is tested for substring matches, in table order.

Role assignment is a pure function of the key string.
"""

from bodycomp.core.config import DEFAULT_TABLES, CorrectionTables
from bodycomp.schemas import Role

# Exact-mode check order
EXACT_ROLE_ORDER = (
    Role.WEIGHT,
    Role.FAT_MASS,
    Role.BODY_FAT_PCT,
    Role.FFM,
    Role.VISCERAL,
    Role.MUSCLE_MASS,
    Role.FFM_COMPONENT,
)


def resolve_role(key: str | None, tables: CorrectionTables = DEFAULT_TABLES) -> Role:
    """Return the role for a param key, or Role.NONE if it is unknown."""
    text = str(key).strip() if key is not None else ""
    if not text:
        return Role.NONE

    if tables.match_mode == "pattern":
        lowered = text.lower()
        for role_name, patterns in tables.key_patterns.items():
            if any(pattern in lowered for pattern in patterns):
                return Role(role_name)
        return Role.NONE

    for role in EXACT_ROLE_ORDER:
        if text in tables.exact_keys.get(role.value, ()):
            return role
    return Role.NONE


def is_muscle_key(key: str | None, tables: CorrectionTables = DEFAULT_TABLES) -> bool:
    """True if the key names a muscle mass item (exact, or substring in pattern mode)."""
    text = str(key).strip() if key is not None else ""
    if not text:
        return False
    if tables.match_mode == "pattern":
        lowered = text.lower()
        return any(p in lowered for p in tables.key_patterns.get(Role.MUSCLE_MASS.value, ()))
    return text in tables.exact_keys.get(Role.MUSCLE_MASS.value, ())
