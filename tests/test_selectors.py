"""Unit tests for flowpilot.selectors — selector maps, data bags and site profiles."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from flowpilot.config import FlowPilotConfigError
from flowpilot.plan import Navigate
from flowpilot.selectors import (
    coerce_data_bag,
    coerce_selector_map,
    list_profiles,
    load_data_bag,
    load_profile,
    load_selector_map,
    merge_selector_maps,
)


# ---------------------------------------------------------------------------
# 1. merge_selector_maps
# ---------------------------------------------------------------------------

class TestMergeSelectorMaps:
    def test_union_of_keys(self):
        merged = merge_selector_maps({"email": ["a"]}, {"submit": ["b"]})
        assert set(merged) == {"email", "submit"}

    def test_suggested_candidates_come_first(self):
        merged = merge_selector_maps({"email": ["base1", "base2"]}, {"email": ["new1"]})
        assert merged["email"] == ["new1", "base1", "base2"]

    def test_duplicates_removed_by_trimmed_value(self):
        merged = merge_selector_maps(
            {"email": ["label=/email/i", "css=#email"]},
            {"email": ["  css=#email ", "label=/email/i"]},
        )
        assert merged["email"] == ["  css=#email ", "label=/email/i"]

    def test_first_seen_order_within_suggested(self):
        merged = merge_selector_maps({}, {"k": ["x", "y", "x", " y"]})
        assert merged["k"] == ["x", "y"]

    def test_base_is_not_mutated(self):
        base = {"email": ["a"]}
        merge_selector_maps(base, {"email": ["b"]})
        assert base == {"email": ["a"]}

    def test_empty_suggestion_keeps_base(self):
        assert merge_selector_maps({"email": ["a"]}, {}) == {"email": ["a"]}


# ---------------------------------------------------------------------------
# 2. Coercion and loading
# ---------------------------------------------------------------------------

class TestCoercion:
    def test_bare_string_becomes_list(self):
        assert coerce_selector_map({"email": "css=#email"}) == {"email": ["css=#email"]}

    def test_non_mapping_selector_map(self):
        with pytest.raises(FlowPilotConfigError, match="must be a mapping"):
            coerce_selector_map(["css=#email"])

    def test_non_string_candidates(self):
        with pytest.raises(FlowPilotConfigError, match="'email'"):
            coerce_selector_map({"email": [1, 2]})

    def test_data_bag_values_become_strings(self):
        assert coerce_data_bag({"otp": 123456, "note": None}) == {"otp": "123456", "note": ""}

    def test_data_bag_rejects_nested_values(self):
        with pytest.raises(FlowPilotConfigError, match="scalar"):
            coerce_data_bag({"user": {"email": "x"}})

    def test_empty_data_bag(self):
        assert coerce_data_bag(None) == {}


class TestLoading:
    def test_selector_map_from_yaml(self, tmp_path: Path):
        path = tmp_path / "selectors.yaml"
        path.write_text(yaml.dump({"email": ["label=/email/i"]}))
        assert load_selector_map(path) == {"email": ["label=/email/i"]}

    def test_selector_map_from_json(self, tmp_path: Path):
        path = tmp_path / "selectors.json"
        path.write_text(json.dumps({"email": ["label=/email/i"]}))
        assert load_selector_map(path) == {"email": ["label=/email/i"]}

    def test_data_bag_from_yaml(self, tmp_path: Path):
        path = tmp_path / "data.yaml"
        path.write_text("email: ada@example.com\notp: '0042'\n")
        assert load_data_bag(path) == {"email": "ada@example.com", "otp": "0042"}

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FlowPilotConfigError, match="File not found"):
            load_selector_map(tmp_path / "nope.yaml")

    def test_malformed_json(self, tmp_path: Path):
        path = tmp_path / "selectors.json"
        path.write_text("{not json")
        with pytest.raises(FlowPilotConfigError, match="Could not parse") as excinfo:
            load_selector_map(path)
        assert isinstance(excinfo.value.__cause__, json.JSONDecodeError)

    def test_malformed_yaml(self, tmp_path: Path):
        path = tmp_path / "data.yaml"
        path.write_text("email: [unclosed\n")
        with pytest.raises(FlowPilotConfigError, match="Could not parse"):
            load_data_bag(path)


# ---------------------------------------------------------------------------
# 3. Site profiles
# ---------------------------------------------------------------------------

class TestProfiles:
    def test_bundled_profiles_are_listed(self):
        assert {"chaicode_signup", "gmail_compose", "x_compose"} <= set(list_profiles())

    def test_chaicode_signup_profile(self):
        profile = load_profile("chaicode_signup")

        assert profile.site == "https://ui.chaicode.com"
        assert {"auth_menu", "signup_menu", "first_name", "last_name", "otp_input"} <= set(profile.selector_keys)
        assert "confirm_password" in profile.value_keys
        assert profile.plan is not None
        assert profile.plan.steps[0] == Navigate(url="https://ui.chaicode.com")

    def test_bundled_template_plans_use_only_profile_keys(self):
        for name in list_profiles():
            profile = load_profile(name)
            if profile.plan is None:
                continue
            assert set(profile.plan.selector_keys()) <= set(profile.selectors), name
            assert set(profile.plan.value_keys()) <= set(profile.value_keys), name

    def test_profile_from_path(self, tmp_path: Path):
        path = tmp_path / "mysite.yaml"
        path.write_text(yaml.dump({"profile": {"site": "https://my.site", "selectors": {"go": ["css=#go"]}}}))

        profile = load_profile(path)

        assert profile.name == "mysite"
        assert profile.selectors == {"go": ["css=#go"]}
        assert profile.plan is None

    def test_unknown_profile_lists_available(self):
        with pytest.raises(FlowPilotConfigError, match="Available profiles:.*chaicode_signup"):
            load_profile("does_not_exist")

    def test_profile_without_site(self, tmp_path: Path):
        path = tmp_path / "broken.yaml"
        path.write_text(yaml.dump({"profile": {"selectors": {}}}))
        with pytest.raises(FlowPilotConfigError, match="site"):
            load_profile(path)

    def test_profile_with_malformed_yaml(self, tmp_path: Path):
        path = tmp_path / "broken.yaml"
        path.write_text("profile: {site: [unclosed\n")
        with pytest.raises(FlowPilotConfigError, match="Invalid YAML in profile"):
            load_profile(path)
