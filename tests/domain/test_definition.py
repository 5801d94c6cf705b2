"""Tests for definition serialization and D_ref hashing."""

import pytest

from phaseflow.domain.definition import (
    compute_definition_ref,
    definition_from_dict,
    definition_to_dict,
)
from phaseflow.domain.exceptions import DefinitionError
from phaseflow.domain.models import OnExhausted, PhaseKind

BUGFIX = {
    "id": "bugfix",
    "description": "Fix a reported defect",
    "phases": [
        {"id": "implement", "kind": "single", "capabilities": ["implement"]},
        {
            "id": "testing",
            "kind": "loop",
            "capabilities": ["run-tests"],
            "loop": {
                "max_iterations": 3,
                "exit_capability": "judge-tests",
                "on_exhausted": "escalate",
            },
        },
        {"id": "review", "kind": "gate", "gate": {"revise_target": "implement"}},
        {"id": "finalize", "kind": "single", "capabilities": ["finalize"], "timeout": 60},
    ],
}


class TestDefinitionFromDict:
    """Tests for definition_from_dict."""

    def test_builds_phases_in_order(self):
        """Phases keep their order and kinds."""
        definition = definition_from_dict(BUGFIX)

        assert definition.definition_id == "bugfix"
        assert definition.phase_ids == ("implement", "testing", "review", "finalize")
        assert [p.kind for p in definition.phases] == [
            PhaseKind.SINGLE,
            PhaseKind.LOOP,
            PhaseKind.GATE,
            PhaseKind.SINGLE,
        ]

    def test_loop_config_parsed(self):
        """Loop settings map onto LoopConfig."""
        testing = definition_from_dict(BUGFIX).phases[1]

        assert testing.loop_config.max_iterations == 3
        assert testing.loop_config.exit_capability == "judge-tests"
        assert testing.loop_config.on_exhausted is OnExhausted.ESCALATE

    def test_revise_target_by_id_resolves_to_index(self):
        """A revise_target naming an earlier phase becomes its index."""
        review = definition_from_dict(BUGFIX).phases[2]
        assert review.gate_config.revise_target == 0

    def test_gate_section_optional(self):
        """A gate without a 'gate' section defaults to the preceding phase."""
        definition = definition_from_dict(
            {
                "id": "deploy",
                "phases": [
                    {"id": "plan", "kind": "single", "capabilities": ["plan"]},
                    {"id": "confirm", "kind": "gate"},
                ],
            }
        )
        assert definition.phases[1].gate_config.revise_target is None

    def test_unknown_revise_target_rejected(self):
        """Naming a phase that does not exist is a definition error."""
        data = {
            "id": "bad",
            "phases": [
                {"id": "a", "kind": "single", "capabilities": ["x"]},
                {"id": "g", "kind": "gate", "gate": {"revise_target": "nope"}},
            ],
        }
        with pytest.raises(DefinitionError, match="nope"):
            definition_from_dict(data)

    def test_unknown_kind_rejected(self):
        """Kinds outside the closed set are rejected."""
        data = {"id": "bad", "phases": [{"id": "a", "kind": "parallel"}]}
        with pytest.raises(DefinitionError, match="unknown kind"):
            definition_from_dict(data)

    def test_missing_phases_rejected(self):
        """The phases list is required."""
        with pytest.raises(DefinitionError, match="phases"):
            definition_from_dict({"id": "bad"})

    def test_invalid_loop_section_rejected(self):
        """A loop section without exit_capability is rejected."""
        data = {
            "id": "bad",
            "phases": [
                {
                    "id": "t",
                    "kind": "loop",
                    "capabilities": ["run"],
                    "loop": {"max_iterations": 2},
                }
            ],
        }
        with pytest.raises(DefinitionError, match="loop config"):
            definition_from_dict(data)

    def test_capabilities_string_rejected(self):
        """A bare string is not split into one capability per character."""
        data = {
            "id": "w",
            "phases": [{"id": "p", "kind": "fan_out", "capabilities": "build"}],
        }
        with pytest.raises(DefinitionError, match="list of strings"):
            definition_from_dict(data)

    def test_non_string_capability_rejected(self):
        data = {
            "id": "w",
            "phases": [{"id": "p", "kind": "single", "capabilities": [7]}],
        }
        with pytest.raises(DefinitionError, match="list of strings"):
            definition_from_dict(data)

    @pytest.mark.parametrize("timeout", ["5", True, [5]])
    def test_non_numeric_timeout_rejected(self, timeout):
        """Timeouts must be numbers, not anything comparable by accident."""
        data = {
            "id": "w",
            "phases": [
                {"id": "p", "kind": "single", "capabilities": ["build"], "timeout": timeout}
            ],
        }
        with pytest.raises(DefinitionError, match="timeout"):
            definition_from_dict(data)

    @pytest.mark.parametrize("kind", [["single"], {"k": 1}, None])
    def test_unhashable_or_null_kind_rejected(self, kind):
        data = {"id": "w", "phases": [{"id": "p", "kind": kind}]}
        with pytest.raises(DefinitionError, match="unknown kind"):
            definition_from_dict(data)

    def test_missing_kind_rejected(self):
        data = {"id": "w", "phases": [{"id": "p"}]}
        with pytest.raises(DefinitionError, match="missing field 'kind'"):
            definition_from_dict(data)

    def test_non_string_phase_id_rejected(self):
        data = {"id": "w", "phases": [{"id": 3, "kind": "single", "capabilities": ["a"]}]}
        with pytest.raises(DefinitionError, match="'id' must be a string"):
            definition_from_dict(data)

    def test_loop_section_not_an_object_rejected(self):
        data = {
            "id": "w",
            "phases": [
                {"id": "t", "kind": "loop", "capabilities": ["run"], "loop": [3]}
            ],
        }
        with pytest.raises(DefinitionError, match="loop config"):
            definition_from_dict(data)

    def test_fractional_revise_target_rejected(self):
        data = {
            "id": "w",
            "phases": [
                {"id": "a", "kind": "single", "capabilities": ["a"]},
                {"id": "g", "kind": "gate", "gate": {"revise_target": 0.5}},
            ],
        }
        with pytest.raises(DefinitionError, match="revise_target"):
            definition_from_dict(data)

    def test_to_dict_round_trip(self):
        """A serialized definition rebuilds to an equal definition."""
        definition = definition_from_dict(BUGFIX)
        assert definition_from_dict(definition_to_dict(definition)) == definition


class TestComputeDefinitionRef:
    """Tests for compute_definition_ref."""

    def test_deterministic(self):
        """Equal definitions hash equally."""
        assert compute_definition_ref(definition_from_dict(BUGFIX)) == (
            compute_definition_ref(definition_from_dict(BUGFIX))
        )

    def test_sha256_hex(self):
        """The ref is a 64-character hex digest."""
        ref = compute_definition_ref(definition_from_dict(BUGFIX))
        assert len(ref) == 64
        int(ref, 16)

    def test_changes_with_iteration_cap(self):
        """Changing a loop cap changes the ref."""
        changed = definition_to_dict(definition_from_dict(BUGFIX))
        changed["phases"][1]["loop"]["max_iterations"] = 5

        assert compute_definition_ref(changed) != compute_definition_ref(
            definition_from_dict(BUGFIX)
        )
