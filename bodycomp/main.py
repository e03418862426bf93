"""
Body Composition Correction — Command Line Entry Point
=======================================================
Runs the body fat correction on a scale record stored as JSON and prints
the corrected body data.

Usage:
  bodycomp-correct record.json --height 170 --sex 1
  cat record.json | python -m bodycomp.main - --body-type lean --casing snake

The input may be a full record ({"data": {"lefuBodyData": [...]}}) or just
the list of body data items.
"""

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from bodycomp.core.config import DEFAULT_TABLES, settings
from bodycomp.schemas import SubjectProfile, dump_items
from bodycomp.services.record import correct_record

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bodycomp-correct",
        description="Correct bioimpedance body fat % and rebalance fat-free mass.",
    )
    parser.add_argument("input", help="Path to a JSON record, or '-' for stdin")
    parser.add_argument("--height", type=float, help="Height in cm (if not in the record)")
    parser.add_argument("--weight", type=float, help="Weight in kg (if not in the record)")
    parser.add_argument("--sex", type=int, choices=[1, 2], default=1, help="1 = male, 2 = female")
    parser.add_argument("--body-type", help="Stored body type override (e.g. 'lean')")
    parser.add_argument("--previous-bf", type=float, help="Last corrected BF%%, enables the daily limit")
    parser.add_argument("--casing", choices=["camel", "snake"], default="camel")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    return parser


def _load_record(source: str) -> dict:
    if source == "-":
        payload = json.load(sys.stdin)
    else:
        with open(source, encoding="utf-8") as fh:
            payload = json.load(fh)
    # A bare item list is wrapped into a record
    if isinstance(payload, list):
        return {"lefuBodyData": payload}
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object or list, got {type(payload).__name__}")
    return payload


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        record = _load_record(args.input)
    except (OSError, ValueError) as exc:
        logger.error(f"❌ Could not read record from {args.input}: {exc}")
        return 1

    try:
        profile = SubjectProfile(
            height_cm=args.height,
            weight_kg=args.weight,
            sex=args.sex,
            user_body_type=args.body_type,
            previous_bf=args.previous_bf,
        )
    except ValidationError as exc:
        logger.error(f"❌ Invalid subject profile: {exc}")
        return 2

    _, result = correct_record(record, profile, DEFAULT_TABLES)

    output = {
        "applied": result.applied,
        "bucket": result.bucket.value,
        "bf_corrected": result.bf_corrected,
        "body_data": dump_items(result.mutated_items, casing=args.casing),
    }
    json.dump(output, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
