"""
Tests for the record adapter, the CLI entry point and settings loading.
"""

import json

import pytest
from pydantic import ValidationError

from bodycomp.core.config import Settings, build_tables
from bodycomp.main import main
from bodycomp.schemas import Bucket, SubjectProfile, dump_items
from bodycomp.services.record import body_data_from_record, correct_record

BODY_DATA = [
    {"bodyParamKey": "ppWeightKg", "currentValue": 70, "unit": "kg"},
    {"bodyParamKey": "ppFat", "currentValue": 22.0, "unit": "%"},
    {"bodyParamKey": "ppMuscleKg", "currentValue": 30, "unit": "kg"},
]


# ── Record adapter ──────────────────────────────────────────────

class TestBodyDataFromRecord:

    def test_nested_under_data(self):
        items = body_data_from_record({"data": {"lefuBodyData": BODY_DATA}})
        assert [i.key for i in items] == ["ppWeightKg", "ppFat", "ppMuscleKg"]

    def test_at_root(self):
        items = body_data_from_record({"lefuBodyData": BODY_DATA})
        assert len(items) == 3

    def test_invalid_items_stay_in_place(self):
        bad = {"bodyParamKey": "ppFat", "currentValue": {"nested": True}}
        items = body_data_from_record({"lefuBodyData": [bad, *BODY_DATA]})
        assert len(items) == 4
        assert items[0] == bad
        assert [i.key for i in items[1:]] == ["ppWeightKg", "ppFat", "ppMuscleKg"]

    def test_numeric_metadata_is_kept(self):
        raw = {"bodyParamKey": "ppMuscleKg", "currentValue": 30, "standardTitle": 5, "unit": 1}
        items = body_data_from_record({"lefuBodyData": [raw]})
        assert len(items) == 1
        assert dump_items(items) == [raw]

    def test_missing_or_wrong_type(self):
        assert body_data_from_record({}) == []
        assert body_data_from_record({"lefuBodyData": "oops"}) == []


class TestCorrectRecord:

    def test_record_values(self):
        record = {"weightKg": 70, "height": 170, "sex": 1, "data": {"lefuBodyData": BODY_DATA}}
        profile = SubjectProfile(user_body_type="lean")
        raw, result = correct_record(record, profile)

        assert result.applied is True
        assert result.bucket == Bucket.LEAN
        assert result.bf_corrected == 18.5
        # raw items are returned untouched for separate storage
        assert [i.value for i in raw] == [70, 22.0, 30]
        assert [i.value for i in result.mutated_items] == [70, 18.5, 31.35]

    def test_profile_fills_missing_parameters(self):
        profile = SubjectProfile(height_cm=170, weight_kg=70, sex=2, user_body_type="normal")
        _, result = correct_record({"lefuBodyData": BODY_DATA[1:]}, profile)
        assert result.applied is True
        assert result.bf_corrected == 22.0

    def test_record_beats_profile(self):
        profile = SubjectProfile(height_cm=170, weight_kg=90, sex=1, user_body_type="normal")
        record = {"weight": "70", "lefuBodyData": BODY_DATA}
        _, result = correct_record(record, profile)
        assert result.fat_mass_new == 15.4

    def test_previous_bf_limits_change(self):
        profile = SubjectProfile(height_cm=170, user_body_type="normal", previous_bf=20.0)
        _, result = correct_record({"weightKg": 70, "lefuBodyData": BODY_DATA}, profile)
        assert result.bf_corrected == 21.0

    def test_unknown_sex_code(self):
        _, result = correct_record(
            {"weightKg": 70, "sex": "x", "lefuBodyData": BODY_DATA},
            SubjectProfile(user_body_type="normal"),
        )
        assert result.applied is True

    def test_empty_record_is_not_applied(self):
        raw, result = correct_record({})
        assert raw == []
        assert result.applied is False
        assert result.mutated_items == []


# ── CLI ─────────────────────────────────────────────────────────

class TestMain:

    def test_corrects_file(self, tmp_path, capsys):
        path = tmp_path / "record.json"
        path.write_text(json.dumps({"weightKg": 70, "height": 170, "lefuBodyData": BODY_DATA}))

        exit_code = main([str(path), "--body-type", "lean", "--casing", "snake"])
        output = json.loads(capsys.readouterr().out)

        assert exit_code == 0
        assert output["applied"] is True
        assert output["bucket"] == "lean"
        assert output["bf_corrected"] == 18.5
        assert output["body_data"][1] == {"body_param_key": "ppFat", "current_value": 18.5, "unit": "%"}

    def test_bare_item_list(self, tmp_path, capsys):
        path = tmp_path / "items.json"
        path.write_text(json.dumps(BODY_DATA))

        exit_code = main([str(path), "--height", "170", "--body-type", "lean"])
        output = json.loads(capsys.readouterr().out)

        assert exit_code == 0
        assert output["body_data"][2]["currentValue"] == 31.35

    def test_unreadable_input(self, tmp_path):
        assert main([str(tmp_path / "missing.json")]) == 1

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        assert main([str(path)]) == 1

    def test_invalid_profile(self, tmp_path):
        path = tmp_path / "items.json"
        path.write_text(json.dumps(BODY_DATA))
        assert main([str(path), "--height", "-5"]) == 2


# ── Settings ────────────────────────────────────────────────────

class TestSettings:

    def test_defaults(self):
        tables = build_tables(Settings())
        assert tables.match_mode == "exact"
        assert tables.invalid_override_policy == "classify"
        assert tables.max_daily_bf_change == 1.0
        assert tables.bf_adjustment["lean"] == -3.5
        assert tables.bf_bounds["female"] == (10.0, 60.0)

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BODYCOMP_ROLE_MATCH_MODE", "pattern")
        monkeypatch.setenv("BODYCOMP_INVALID_OVERRIDE_POLICY", "normal")
        monkeypatch.setenv("BODYCOMP_MAX_DAILY_BF_CHANGE", "0.5")

        tables = build_tables(Settings())
        assert tables.match_mode == "pattern"
        assert tables.invalid_override_policy == "normal"
        assert tables.max_daily_bf_change == 0.5

    def test_invalid_mode_rejected(self, monkeypatch):
        monkeypatch.setenv("BODYCOMP_ROLE_MATCH_MODE", "fuzzy")
        with pytest.raises(ValidationError):
            Settings()

    def test_tables_are_frozen(self):
        tables = build_tables(Settings())
        with pytest.raises(ValidationError):
            tables.match_mode = "pattern"
