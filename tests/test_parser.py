from __future__ import annotations

import json

from persona_core.parser import parse_indices


def test_plain_json_array_round_trips():
    assert parse_indices(json.dumps([2, 7, 12]), 20) == [2, 7, 12]
    assert parse_indices("  [4,1]\n", 20) == [4, 1]


def test_bracketed_array_inside_chatter():
    raw = "Sure! Here are the indices: [2, 7, 12]. Hope that helps."
    assert parse_indices(raw, 20) == [2, 7, 12]


def test_no_numbers_yields_empty_list():
    assert parse_indices("I cannot determine this.", 20) == []
    assert parse_indices("", 20) == []
    assert parse_indices(None, 20) == []  # type: ignore[arg-type]


def test_comma_run_is_range_filtered():
    assert parse_indices("I would pick 2, 7, 12 for this user", 20) == [2, 7, 12]
    assert parse_indices("Choose 2, 40, 12", 20) == [2, 12]


def test_all_integer_tokens_as_last_resort():
    assert parse_indices("Question 4 first, then maybe question 9", 20) == [4, 9]
    assert parse_indices("Try 0 or 99", 20) == []


def test_non_numeric_arrays_fall_through():
    assert parse_indices('Options: ["a", "b"] and finally 3', 20) == [3]
    assert parse_indices("[true, 2]", 20) == [2]


def test_integral_floats_are_accepted():
    assert parse_indices("[2.0, 3]", 20) == [2, 3]


def test_json_strategies_leave_range_checks_to_caller():
    # the engine validates JSON picks against the remaining slice
    assert parse_indices("[25, 3]", 20) == [25, 3]


def test_empty_json_array_falls_through_to_regex():
    assert parse_indices("[] but 5 looks good", 20) == [5]
