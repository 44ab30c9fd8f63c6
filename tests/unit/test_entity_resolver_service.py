"""
Unit tests for entity resolution and the two-pass cascade.
"""

from unittest.mock import MagicMock

import pytest

from exceptions import DatabaseError, ResolutionError
from models.import_mapping import TransformationResult
from models.import_resolution import ResolvedUser
from services.directory_service import DirectoryService
from services.entity_resolver_service import (
    EntityResolverService,
    backoff_delay,
    build_request,
    is_directory_id,
    normalize_username,
)
from tests.factories import FakeDirectory, FakeInventory


@pytest.fixture
def sleeps():
    return []


def _resolver(directory, inventory, sleeps, max_retries=3):
    return EntityResolverService(
        directory=directory,
        inventory=inventory,
        max_retries=max_retries,
        backoff_base=1.0,
        backoff_cap=10.0,
        sleep=sleeps.append,
    )


# ===================
# HELPERS
# ===================

class TestNormalizeUsername:
    """Tests for normalize_username."""

    @pytest.mark.parametrize("raw,expected", [
        ("BGC\\jsmith", "jsmith"),
        ("  Jane Doe ", "Jane Doe"),
        ("jsmith", "jsmith"),
        ("DOMAIN\\", None),
        ("", None),
        (None, None),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_username(raw) == expected

    def test_idempotent(self):
        once = normalize_username("BGC\\jsmith")
        assert normalize_username(once) == once

    @pytest.mark.parametrize("value,expected", [
        ("0f8fad5b-d9cb-469f-a165-70867728950e", True),
        ("0F8FAD5B-D9CB-469F-A165-70867728950E", True),
        ("0f8fad5b-d9cb-469f-a165", False),
        ("jsmith", False),
        ("", False),
        (None, False),
    ])
    def test_directory_id_detection(self, value, expected):
        assert is_directory_id(value) is expected


class TestBuildRequest:
    """Tests for build_request."""

    def test_collects_identifiers(self):
        results = [
            TransformationResult(direct_fields={
                "assigned_to": "BGC\\jsmith", "location": "Calgary", "serial_number": "SN1",
            }),
            TransformationResult(direct_fields={"assigned_to": "", "serial_number": " "}),
        ]

        request = build_request(results)

        assert request.usernames == {"jsmith"}
        assert request.location_names == {"Calgary"}
        assert request.serial_numbers == {"SN1"}

    def test_directory_ids_are_not_looked_up(self):
        results = [
            TransformationResult(direct_fields={"assigned_to": "0f8fad5b-d9cb-469f-a165-70867728950e"}),
            TransformationResult(direct_fields={"assigned_to": "BGC\\0f8fad5b-d9cb-469f-a165-70867728950e"}),
        ]

        assert build_request(results).usernames == set()


class TestBackoff:
    """Tests for backoff_delay."""

    def test_doubles_and_caps(self):
        assert [backoff_delay(a, 1.0, 10.0) for a in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]


# ===================
# SINGLE BATCH
# ===================

class TestResolveEntities:
    """Tests for resolve_entities."""

    def test_one_call_per_collaborator(self, fake_directory, sleeps):
        inventory = FakeInventory(assets=[
            {"id": 42, "asset_tag": "BGC000042", "serial_number": "SN1"},
        ])
        resolver = _resolver(fake_directory, inventory, sleeps)

        result = resolver.resolve_entities(
            ["BGC\\jsmith", "jsmith", "ghost"], ["YVR", "Atlantis"], ["SN1", "SN2", "SN1"]
        )

        assert len(fake_directory.user_calls) == 1
        assert fake_directory.user_calls[0] == ["jsmith", "ghost"]
        assert len(fake_directory.location_calls) == 1
        assert inventory.serial_lookups == 1

        assert result.user_map["jsmith"].id == "aad-jsmith"
        assert result.user_map["ghost"] is None
        assert result.location_map == {"YVR": "loc-van", "Atlantis": None}
        assert list(result.conflicts) == ["SN1"]
        assert result.conflicts["SN1"].existing_id == "42"

    def test_idempotent_for_fixed_directory(self, fake_directory, fake_inventory, sleeps):
        resolver = _resolver(fake_directory, fake_inventory, sleeps)
        args = (["BGC\\jsmith", "Jane Doe"], ["YVR"], ["SN1"])

        assert resolver.resolve_entities(*args) == resolver.resolve_entities(*args)

    def test_directory_ids_skip_user_lookup(self, fake_directory, fake_inventory, sleeps):
        resolver = _resolver(fake_directory, fake_inventory, sleeps)

        result = resolver.resolve_entities(["0f8fad5b-d9cb-469f-a165-70867728950e", "jsmith"], [], [])

        assert fake_directory.user_calls == [["jsmith"]]
        assert list(result.user_map) == ["jsmith"]

    def test_empty_input_makes_no_calls(self, fake_directory, fake_inventory, sleeps):
        result = _resolver(fake_directory, fake_inventory, sleeps).resolve_entities([], [], [])

        assert result.user_map == {} and result.location_map == {} and result.conflicts == {}
        assert fake_directory.user_calls == []
        assert fake_inventory.serial_lookups == 0

    def test_inventory_failure_is_a_resolution_error(self, fake_directory, sleeps):
        class BrokenInventory(FakeInventory):
            def find_by_serials(self, serials):
                raise DatabaseError("select", "timeout")

        resolver = _resolver(fake_directory, BrokenInventory(), sleeps)

        with pytest.raises(ResolutionError):
            resolver.resolve_entities([], [], ["SN1"])


# ===================
# CASCADE
# ===================

class TestResolveWithCascade:
    """Tests for resolve_with_cascade."""

    def test_office_locations_resolved_in_second_pass(self, fake_directory, fake_inventory, sleeps):
        resolver = _resolver(fake_directory, fake_inventory, sleeps)

        result = resolver.resolve_with_cascade(["jsmith", "Jane Doe"], [], [])

        assert result.location_map == {"Calgary": "loc-cal", "Vancouver": "loc-van"}
        assert fake_directory.location_calls == [["Calgary", "Vancouver"]]

    def test_second_pass_wins_on_collision(self, sample_locations, fake_inventory, sleeps):
        class SplitDirectory(FakeDirectory):
            def lookup_locations(self, names):
                self.location_calls.append(list(names))
                first_pass = len(self.location_calls) == 1
                return {n: ("pass-1" if first_pass else "pass-2") for n in names}

        directory = SplitDirectory(users={
            "jsmith": ResolvedUser(id="aad-jsmith", display_name="John Smith", office_location="Calgary"),
        })
        resolver = _resolver(directory, fake_inventory, sleeps)

        result = resolver.resolve_with_cascade(["jsmith"], ["Calgary", "Toronto"], [])

        assert result.location_map == {"Calgary": "pass-2", "Toronto": "pass-1"}

    def test_retries_with_exponential_backoff(self, sample_users, sample_locations, fake_inventory, sleeps):
        directory = FakeDirectory(users=sample_users, locations=sample_locations, failures=3)
        resolver = _resolver(directory, fake_inventory, sleeps)

        result = resolver.resolve_with_cascade(["jsmith"], [], [])

        assert sleeps == [1.0, 2.0, 4.0]
        assert result.user_map["jsmith"].id == "aad-jsmith"

    def test_pass_one_failure_degrades_to_empty(self, sample_users, fake_inventory, sleeps):
        directory = FakeDirectory(users=sample_users, failures=100)
        resolver = _resolver(directory, fake_inventory, sleeps)

        result = resolver.resolve_with_cascade(["jsmith"], ["Calgary"], ["SN1"])

        assert result.user_map == {}
        assert result.location_map == {}
        assert result.conflicts == {}
        assert len(sleeps) == 3

    def test_pass_two_failure_keeps_pass_one(self, sample_users, sample_locations, fake_inventory, sleeps):
        class PassTwoFails(FakeDirectory):
            def lookup_locations(self, names):
                if self.user_calls:
                    raise ResolutionError("directory unavailable")
                return super().lookup_locations(names)

        directory = PassTwoFails(users=sample_users, locations=sample_locations)
        resolver = _resolver(directory, fake_inventory, sleeps, max_retries=1)

        result = resolver.resolve_with_cascade(["jsmith"], [], [])

        assert result.user_map["jsmith"].id == "aad-jsmith"
        assert result.location_map == {}
        assert sleeps == [1.0]

    def test_unreadable_directory_body_degrades_to_empty(self, fake_inventory, sleeps):
        response = MagicMock()
        response.status_code = 200
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        session = MagicMock()
        session.get.return_value = response
        directory = DirectoryService(
            base_url="https://directory.test", token="", corporate_domains=["x.ca"], session=session
        )
        resolver = _resolver(directory, fake_inventory, sleeps, max_retries=2)

        result = resolver.resolve_with_cascade(["jsmith"], [], [])

        assert result.user_map == {}
        assert sleeps == [1.0, 2.0]

    def test_directory_entries_without_id_resolve_to_none(self, fake_inventory, sleeps):
        session = MagicMock()
        session.get.return_value.status_code = 200
        session.get.return_value.json.return_value = {"value": [{"displayName": "John"}]}
        directory = DirectoryService(
            base_url="https://directory.test", token="", corporate_domains=["x.ca"], session=session
        )
        resolver = _resolver(directory, fake_inventory, sleeps)

        result = resolver.resolve_with_cascade(["jsmith"], [], [])

        assert result.user_map == {"jsmith": None}
        assert sleeps == []
