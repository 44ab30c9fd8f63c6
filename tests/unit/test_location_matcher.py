"""
Unit tests for free-text location matching.
"""

from utils.location_matcher import city_for_abbreviation, match_location, match_locations


# ===================
# SINGLE MATCH
# ===================

class TestMatchLocation:
    """Tests for match_location strategies."""

    def test_exact_city(self, sample_locations):
        assert match_location("calgary", sample_locations)["id"] == "loc-cal"

    def test_abbreviation(self, sample_locations):
        assert match_location("YVR", sample_locations)["id"] == "loc-van"
        assert match_location("tor", sample_locations)["id"] == "loc-tor"

    def test_partial_needs_four_characters(self, sample_locations):
        assert match_location("Vanc", sample_locations)["id"] == "loc-van"
        assert match_location("Tor", sample_locations)["id"] == "loc-tor"
        assert match_location("Cal", sample_locations)["id"] == "loc-cal"
        assert match_location("Tro", sample_locations) is None

    def test_partial_city_inside_longer_name(self, sample_locations):
        assert match_location("Downtown Calgary", sample_locations)["id"] == "loc-cal"

    def test_city_and_province(self):
        locations = [
            {"id": "loc-lon-on", "city": "London", "province": "ON"},
        ]
        assert match_location("London, ON", locations)["id"] == "loc-lon-on"

    def test_blank(self, sample_locations):
        assert match_location("  ", sample_locations) is None


class TestMatchLocations:
    """Tests for the batch helper."""

    def test_unmatched_names_map_to_none(self, sample_locations):
        result = match_locations(["Calgary", "Atlantis", "Calgary", " "], sample_locations)

        assert result == {"Calgary": "loc-cal", "Atlantis": None}

    def test_abbreviation_display_city(self):
        assert city_for_abbreviation("CAL") == "Calgary"
        assert city_for_abbreviation("zzz") is None
