from __future__ import annotations

import dataclasses
import os

import pytest
from desktop_build_pipeline.core import ConfigurationError
from desktop_build_pipeline.pipeline import EnvironmentLayers, FailurePolicy, Step


def test_step_is_immutable() -> None:
    overrides = {"A": "1"}
    st = Step("install", ["npm", "ci"], env_overrides=overrides)

    assert st.command == ("npm", "ci")
    assert not st.uses_shell
    assert st.display_command() == "npm ci"

    overrides["A"] = "2"
    assert st.env_overrides["A"] == "1"

    with pytest.raises(TypeError):
        st.env_overrides["B"] = "x"  # type: ignore[index]
    with pytest.raises(dataclasses.FrozenInstanceError):
        st.name = "other"  # type: ignore[misc]


def test_step_policy_parsing() -> None:
    assert Step("a", "x", on_failure="warn-only").on_failure is FailurePolicy.WARN
    with pytest.raises(ConfigurationError, match="on_failure"):
        Step("a", "x", on_failure="sometimes")


def test_environment_layers_merge_fresh_per_step(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DBP_TEST_BASE", "base")
    layers = EnvironmentLayers.inherit({"LAYER": "pipeline"})
    monkeypatch.setenv("DBP_TEST_LATE", "late")

    first = layers.for_step({"LAYER": "step", "ONLY_FIRST": "1"})
    first["MUTATED"] = "yes"
    second = layers.for_step({})

    assert first["DBP_TEST_BASE"] == "base"
    assert first["LAYER"] == "step"
    assert second["LAYER"] == "pipeline"
    assert "ONLY_FIRST" not in second
    assert "MUTATED" not in second
    # the base is a snapshot taken at construction
    assert "DBP_TEST_LATE" not in second
    assert "LAYER" not in os.environ

    assert layers.override_keys({"X": "1"}) == ["LAYER", "X"]
