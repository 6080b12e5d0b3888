"""Tests for the entity state differencer."""

from __future__ import annotations

import copy
import math

import pytest
import structlog

from tests.fixtures.entities import COW_DEFAULTS
from worldlog.compaction import ENTITY_REJECT_KEYS, compact, extract_difference, strip_keys


class TestExtractDifference:
    def test_identical_trees_produce_empty_difference(self) -> None:
        assert extract_difference(COW_DEFAULTS, copy.deepcopy(COW_DEFAULTS)) == {}

    def test_changed_scalar_is_kept(self) -> None:
        live = {**COW_DEFAULTS, "Age": -24000}
        assert extract_difference(live, COW_DEFAULTS) == {"Age": -24000}

    def test_int_to_equal_float_is_unchanged(self) -> None:
        assert extract_difference({"Age": 1.0}, {"Age": 1}) == {}

    def test_key_absent_from_baseline_is_kept(self) -> None:
        live = {**COW_DEFAULTS, "CustomName": '{"text":"Bessie"}'}
        assert extract_difference(live, COW_DEFAULTS) == {"CustomName": '{"text":"Bessie"}'}

    def test_key_only_in_baseline_is_not_reported(self) -> None:
        live = {k: v for k, v in COW_DEFAULTS.items() if k != "Air"}
        assert extract_difference(live, COW_DEFAULTS) == {}

    def test_nested_compound_keeps_only_changed_leaves(self) -> None:
        baseline = {"Brain": {"memories": {}, "mood": "calm"}}
        live = {"Brain": {"memories": {"home": [1, 2, 3]}, "mood": "calm"}}
        assert extract_difference(live, baseline) == {"Brain": {"memories": {"home": [1, 2, 3]}}}

    def test_unchanged_nested_compound_is_omitted(self) -> None:
        baseline = {"Brain": {"memories": {"a": 1}}}
        live = {"Brain": {"memories": {"a": 1}}}
        assert extract_difference(live, baseline) == {}

    def test_key_order_does_not_matter(self) -> None:
        baseline = {"Pos": {"x": 1, "y": 2}}
        live = {"Pos": {"y": 2, "x": 1}}
        assert extract_difference(live, baseline) == {}

    def test_compound_list_diffed_element_wise(self) -> None:
        live = copy.deepcopy(COW_DEFAULTS)
        live["Attributes"][1]["Base"] = 0.25
        assert extract_difference(live, COW_DEFAULTS) == {"Attributes": [{}, {"Base": 0.25}]}

    def test_compound_list_of_different_length_kept_whole(self) -> None:
        live = copy.deepcopy(COW_DEFAULTS)
        live["Attributes"].append({"Name": "generic.armor", "Base": 2.0})
        assert extract_difference(live, COW_DEFAULTS) == {"Attributes": live["Attributes"]}

    def test_scalar_list_kept_whole(self) -> None:
        baseline = {"ArmorDropChances": [0.085, 0.085, 0.085, 0.085]}
        live = {"ArmorDropChances": [0.085, 2.0, 0.085, 0.085]}
        assert extract_difference(live, baseline) == live

    def test_type_change_keeps_live_value(self) -> None:
        assert extract_difference({"Owner": "steve"}, {"Owner": {"name": "steve"}}) == {"Owner": "steve"}

    def test_bool_and_int_are_distinct(self) -> None:
        assert extract_difference({"Sitting": True}, {"Sitting": 1}) == {"Sitting": True}

    def test_int_and_equal_float_are_identical(self) -> None:
        assert extract_difference({"Health": 10}, {"Health": 10.0}) == {}

    def test_large_longs_compare_by_value(self) -> None:
        uuid_most = -6_417_302_491_231_034_213
        assert extract_difference({"UUIDMost": uuid_most}, {"UUIDMost": uuid_most}) == {}
        assert extract_difference({"UUIDMost": uuid_most}, {"UUIDMost": uuid_most + 1}) == {"UUIDMost": uuid_most}

    def test_inputs_are_not_mutated(self) -> None:
        live = copy.deepcopy(COW_DEFAULTS)
        live["Attributes"][0]["Base"] = 4.0
        live_before = copy.deepcopy(live)
        baseline = copy.deepcopy(COW_DEFAULTS)

        extract_difference(live, baseline)

        assert live == live_before
        assert baseline == COW_DEFAULTS

    def test_result_does_not_alias_live_tree(self) -> None:
        live = {"Inventory": [{"id": "wheat", "Count": 3}]}
        result = extract_difference(live, {})

        result["Inventory"][0]["Count"] = 64

        assert live["Inventory"][0]["Count"] == 3


class TestStripKeys:
    def test_removes_only_top_level_keys(self) -> None:
        tree = {"Health": 4.0, "Passengers": [{"Health": 2.0}]}
        assert strip_keys(tree, {"Health"}) == {"Passengers": [{"Health": 2.0}]}

    def test_missing_keys_are_ignored(self) -> None:
        assert strip_keys({"Age": 3}, ["Fire"]) == {"Age": 3}


class TestCompact:
    def test_reject_keys_are_stripped_from_difference(self) -> None:
        live = {**COW_DEFAULTS, "Health": 3.0, "Fire": 20, "Motion": [0.1, 0.0, 0.0], "Age": 12}
        assert compact(live, COW_DEFAULTS) == {"Age": 12}

    def test_default_reject_keys(self) -> None:
        assert ENTITY_REJECT_KEYS == {
            "DeathTime",
            "Fire",
            "Health",
            "HurtByTimestamp",
            "HurtTime",
            "Motion",
            "OnGround",
            "WorldUUIDLeast",
            "WorldUUIDMost",
        }

    def test_custom_reject_keys(self) -> None:
        live = {**COW_DEFAULTS, "Health": 3.0, "Age": 12}
        assert compact(live, COW_DEFAULTS, reject_keys=["Age"]) == {"Health": 3.0}

    def test_world_uuid_longs_are_stripped(self) -> None:
        live = {"WorldUUIDLeast": -8_796_093_022_208_123_456, "WorldUUIDMost": 4_611_686_018_427_387_904, "Age": 1}
        assert compact(live, {}) == {"Age": 1}

    def test_nan_motion_compacts_away(self) -> None:
        live = {"Motion": [math.nan, 0.0, 0.0], "Age": 3}
        assert compact(live, {"Motion": [0.0, 0.0, 0.0], "Age": 0}) == {"Age": 3}

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_value_outside_reject_keys_is_kept(self, value: float) -> None:
        with structlog.testing.capture_logs() as logs:
            result = compact({"Attack": value, "Age": 0}, {"Attack": 2.0, "Age": 0})

        assert list(result) == ["Attack"]
        entry = next(log for log in logs if log["event"] == "Compacted entity state")
        assert entry["original_bytes"] > entry["compacted_bytes"] > 0

    def test_matching_nan_is_unchanged(self) -> None:
        assert extract_difference({"Attack": math.nan}, {"Attack": math.nan}) == {}

    def test_unserializable_value_does_not_break_size_log(self) -> None:
        live = {"Age": 1, "Owner": object()}
        with structlog.testing.capture_logs() as logs:
            result = compact(live, {"Age": 1})

        assert result == {"Owner": live["Owner"]}
        entry = next(log for log in logs if log["event"] == "Compacted entity state")
        assert entry["original_bytes"] is None

    def test_logs_serialized_sizes(self) -> None:
        live = {**COW_DEFAULTS, "Age": 12}
        with structlog.testing.capture_logs() as logs:
            compact(live, COW_DEFAULTS)

        entry = next(log for log in logs if log["event"] == "Compacted entity state")
        assert entry["log_level"] == "debug"
        assert entry["compacted_bytes"] == len(b'{"Age":12}')
        assert entry["original_bytes"] > entry["compacted_bytes"]
