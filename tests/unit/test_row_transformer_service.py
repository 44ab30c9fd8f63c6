"""
Unit tests for row finalization and write planning.
"""

import pytest

from models.import_mapping import TransformationResult
from models.import_resolution import ResolutionResult, ResolvedUser, SerialConflict
from models.import_session import ConflictPolicy, WriteAction
from services.row_transformer_service import (
    MISSING_SERIAL,
    finalize_row,
    finalize_rows,
    plan_write,
)


@pytest.fixture
def resolution():
    return ResolutionResult(
        user_map={
            "jsmith": ResolvedUser(id="aad-jsmith", display_name="John Smith", office_location="Calgary"),
            "ghost": None,
        },
        location_map={"Calgary": "loc-cal", "YVR": "loc-van", "Atlantis": None},
        conflicts={
            "SN-DUP": SerialConflict(existing_id="asset-9", existing_tag="BGC000009", serial_number="SN-DUP"),
        },
    )


def _result(**direct):
    return TransformationResult(direct_fields=direct)


# ===================
# ASSIGNEE
# ===================

class TestAssignee:
    """Tests for assignee resolution."""

    def test_resolved_user_replaces_raw_value(self, resolution):
        row = finalize_row(0, {}, _result(assigned_to="BGC\\jsmith", serial_number="SN1"), resolution)

        assert row.direct["assigned_to"] == "aad-jsmith"
        assert row.assignee_display_name == "John Smith"
        assert row.unresolved_username is None
        assert row.direct["status"] == "ASSIGNED"

    def test_unresolved_user_kept_verbatim(self, resolution):
        row = finalize_row(0, {}, _result(assigned_to="BGC\\ghost", serial_number="SN1"), resolution)

        assert row.direct["assigned_to"] == "BGC\\ghost"
        assert row.unresolved_username == "BGC\\ghost"
        assert 'User "BGC\\ghost" could not be resolved; original value kept' in row.notes

    def test_directory_id_kept_without_lookup(self):
        guid = "0f8fad5b-d9cb-469f-a165-70867728950e"

        row = finalize_row(0, {}, _result(assigned_to=guid, serial_number="SN1"), ResolutionResult())

        assert row.direct["assigned_to"] == guid
        assert row.unresolved_username is None
        assert row.notes == []
        assert row.direct["status"] == "ASSIGNED"

    def test_domain_prefixed_directory_id_is_stripped(self):
        guid = "0f8fad5b-d9cb-469f-a165-70867728950e"

        row = finalize_row(0, {}, _result(assigned_to=f"BGC\\{guid}", serial_number="SN1"), ResolutionResult())

        assert row.direct["assigned_to"] == guid
        assert row.unresolved_username is None

    def test_no_assignee_is_available(self, resolution):
        row = finalize_row(0, {}, _result(serial_number="SN1"), resolution)

        assert row.direct["status"] == "AVAILABLE"


# ===================
# LOCATION
# ===================

class TestLocation:
    """Tests for location resolution and the office fallback."""

    def test_direct_location(self, resolution):
        row = finalize_row(0, {}, _result(location="YVR", serial_number="SN1"), resolution)

        assert row.direct["location_id"] == "loc-van"
        assert "location" not in row.direct

    def test_unmatched_location_goes_to_extended(self, resolution):
        row = finalize_row(0, {}, _result(location="Atlantis", serial_number="SN1"), resolution)

        assert "location_id" not in row.direct
        assert row.extended["location"] == "Atlantis"
        assert row.unresolved_location == "Atlantis"

    def test_office_fallback(self, resolution):
        row = finalize_row(0, {}, _result(assigned_to="jsmith", serial_number="SN1"), resolution)

        assert row.direct["location_id"] == "loc-cal"

    def test_explicit_location_beats_office(self, resolution):
        row = finalize_row(0, {}, _result(assigned_to="jsmith", location="YVR", serial_number="SN1"), resolution)

        assert row.direct["location_id"] == "loc-van"


# ===================
# TAGS, SERIALS, CONFLICTS
# ===================

class TestRowDetails:
    """Tests for phone tags, serial validation and conflicts."""

    def test_phone_tag_uses_display_name(self, resolution):
        row = finalize_row(
            0, {},
            _result(asset_type="PHONE", asset_tag="PH-jsmith", assigned_to="jsmith", serial_number="IMEI1"),
            resolution,
        )

        assert row.direct["asset_tag"] == "PH-John Smith"

    def test_missing_serial(self, resolution):
        row = finalize_row(0, {}, _result(asset_tag="X"), resolution)

        assert row.validation_errors == [MISSING_SERIAL]
        assert not row.is_valid

    def test_missing_serial_not_reported_twice(self, resolution):
        result = TransformationResult(validation_errors=["Required field serial_number is missing"])

        row = finalize_row(0, {}, result, resolution)

        assert row.validation_errors == ["Required field serial_number is missing"]

    def test_conflict_flags(self, resolution):
        row = finalize_row(0, {}, _result(serial_number="SN-DUP"), resolution)

        assert row.conflict_serial == "SN-DUP"
        assert row.conflict_existing_id == "asset-9"

    def test_transformation_result_untouched(self, resolution):
        result = _result(assigned_to="jsmith", location="YVR", serial_number="SN1")

        finalize_row(0, {}, result, resolution)

        assert result.direct_fields["assigned_to"] == "jsmith"
        assert result.direct_fields["location"] == "YVR"


class TestFinalizeRows:
    """Tests for finalize_rows."""

    def test_indexes_by_position(self, resolution):
        originals = [{"a": "1"}, {"a": "2"}]
        rows = finalize_rows(originals, [_result(serial_number="S1"), _result(serial_number="S2")], resolution)

        assert [r.index for r in rows] == [0, 1]
        assert rows[1].original == {"a": "2"}

    def test_length_mismatch(self, resolution):
        with pytest.raises(ValueError):
            finalize_rows([{}], [], resolution)


class TestPlanWrite:
    """Tests for plan_write."""

    def test_actions(self, resolution):
        new = finalize_row(0, {}, _result(serial_number="SN1"), resolution)
        dup = finalize_row(1, {}, _result(serial_number="SN-DUP"), resolution)

        assert plan_write(new, ConflictPolicy.SKIP) == WriteAction.INSERT
        assert plan_write(dup, ConflictPolicy.SKIP) == WriteAction.SKIP
        assert plan_write(dup, ConflictPolicy.OVERWRITE) == WriteAction.UPDATE
