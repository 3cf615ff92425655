# tests/test_naming.py

import pytest

from aimtrack.naming import normalize_task_name, scenario_from_filename


class TestNormalizeTaskName:

    @pytest.mark.parametrize("raw, expected", [
        ("Tile Frenzy - Challenge - 2024.01.05-10.30.00 Stats", "Tile Frenzy"),
        ("Tile Frenzy - 2024.01.05-10.30.00 Stats", "Tile Frenzy"),
        ("Tile Frenzy Stats", "Tile Frenzy"),
        ("Tile Frenzy stat", "Tile Frenzy"),
        ("Tile   Frenzy", "Tile Frenzy"),
        ("Tile Frenzy", "Tile Frenzy"),
    ])
    def test_suffixes_stripped(self, raw, expected):
        assert normalize_task_name(raw) == expected

    def test_stats_inside_a_word_kept(self):
        assert normalize_task_name("Smoothstats") == "Smoothstats"

    def test_empty_passthrough(self):
        assert normalize_task_name("") == ""
        assert normalize_task_name(None) is None

    def test_idempotent(self):
        once = normalize_task_name("Pasu - Challenge - 2024.01.05-10.30.00 Stats")
        assert normalize_task_name(once) == once


class TestScenarioFromFilename:

    def test_challenge_export(self):
        assert scenario_from_filename("/stats/Tile Frenzy - Challenge - 2024.01.05-10.30.12 Stats.csv") == "Tile Frenzy"

    def test_stats_suffix(self):
        assert scenario_from_filename("Gridshot Stats.csv") == "Gridshot"

    def test_plain_csv(self):
        assert scenario_from_filename("Gridshot.CSV") == "Gridshot"

    def test_empty(self):
        assert scenario_from_filename("") is None
        assert scenario_from_filename(".csv") is None

