"""Tests for difficulty profiles and age-appropriate problem generation."""

import random

import pytest

from robopet.models.device import AgeGroup, ComponentType, Position, ProblemType, ToolType
from robopet.services.difficulty import BRACKET_ORDER, all_profiles, get_profile
from robopet.services.problem_generator import (
    ProblemGenerator,
    create_visual_cues,
    required_tool_for,
)

from conftest import make_pet, make_problem

BRACKETS = ["3-5", "6-8", "9-12"]


class TestDifficultyLadder:
    """Difficulty profiles per age bracket."""

    def test_profiles_are_monotonic(self):
        """Older brackets are never easier than younger ones."""
        profiles = all_profiles()
        assert [p.age_group for p in profiles] == BRACKET_ORDER
        for lower, upper in zip(profiles, profiles[1:]):
            assert lower.max_problems <= upper.max_problems
            assert lower.max_severity <= upper.max_severity
            assert lower.hint_delay_ms <= upper.hint_delay_ms
            assert lower.visual_cue_intensity >= upper.visual_cue_intensity
            assert len(lower.allowed_problem_types) <= len(upper.allowed_problem_types)
            assert len(lower.allowed_components) <= len(upper.allowed_components)

    def test_young_profile_values(self):
        """The youngest bracket uses the gentle settings."""
        young = get_profile("3-5")
        assert young.max_problems == 2
        assert young.hint_delay_ms == 15000
        assert set(young.allowed_components) == {ComponentType.POWER_CORE, ComponentType.CHASSIS_PLATING}

    def test_unknown_bracket_raises(self):
        """Unknown age brackets are rejected."""
        with pytest.raises(ValueError):
            get_profile("13-17")


class TestRequiredTools:
    """Which tool fixes which problem."""

    def test_problem_type_mapping_is_fixed(self):
        """Most problem types always need the same tool."""
        assert required_tool_for(ProblemType.LOW_POWER, ComponentType.MOTOR_SYSTEM) == ToolType.BATTERY
        assert required_tool_for(ProblemType.DIRTY, ComponentType.POWER_CORE) == ToolType.OIL_CAN
        assert required_tool_for(ProblemType.DISCONNECTED, ComponentType.SENSOR_ARRAY) == ToolType.SCREWDRIVER

    def test_broken_parts_depend_on_component(self):
        """Broken parts need a tool that depends on the part."""
        assert required_tool_for(ProblemType.BROKEN, ComponentType.POWER_CORE) == ToolType.CIRCUIT_BOARD
        assert required_tool_for(ProblemType.BROKEN, ComponentType.MOTOR_SYSTEM) == ToolType.WRENCH


class TestGeneration:
    """Random problem sets for a pet."""

    @pytest.mark.parametrize("age_group", BRACKETS)
    def test_generated_sets_respect_bracket(self, age_group):
        """Every generated set fits its bracket and validates."""
        profile = get_profile(age_group)
        pet = make_pet()
        for seed in range(40):
            problems = ProblemGenerator(random.Random(seed)).generate_problems(pet, age_group)
            assert 1 <= len(problems) <= profile.max_problems
            for p in problems:
                assert p.component in profile.allowed_components
                assert p.problem_type in profile.allowed_problem_types
                assert p.severity <= profile.max_severity
                assert p.required_tool == required_tool_for(p.problem_type, p.component)
                assert all(c.intensity <= profile.visual_cue_intensity + 1e-9 for c in p.visual_cues)
            assert ProblemGenerator().validate_problem_set(problems, age_group).is_valid

    def test_one_problem_per_component(self, generator):
        """A component never carries two problems."""
        pet = make_pet()
        for _ in range(20):
            problems = generator.generate_problems(pet, "9-12")
            components = [p.component for p in problems]
            assert len(components) == len(set(components))

    def test_same_seed_same_problems(self):
        """Seeded generators are reproducible."""
        pet = make_pet()
        a = ProblemGenerator(random.Random(99)).generate_problems(pet, "9-12")
        b = ProblemGenerator(random.Random(99)).generate_problems(pet, "9-12")
        assert [p.model_dump() for p in a] == [p.model_dump() for p in b]

    def test_fewer_eligible_components_returns_what_fits(self, generator):
        """Asking for more problems than parts returns one per part."""
        pet = make_pet(ComponentType.POWER_CORE)
        problems = generator.generate_problems_with_constraints(pet, "3-5", exact_count=2)
        assert len(problems) == 1
        assert problems[0].component == ComponentType.POWER_CORE

    def test_pet_without_allowed_components_gets_nothing(self, generator):
        """A pet with no eligible parts gets an empty set."""
        pet = make_pet(ComponentType.MOTOR_SYSTEM)
        assert generator.generate_problems(pet, "3-5") == []


class TestConstraints:
    """Generation with caller overrides."""

    def test_exact_count_is_clamped_to_bracket(self, generator):
        """Requested counts are capped at the bracket maximum."""
        problems = generator.generate_problems_with_constraints(make_pet(), "9-12", exact_count=10)
        assert len(problems) == get_profile("9-12").max_problems

    def test_type_override_is_intersected_with_bracket(self, generator):
        """Type overrides cannot add types the bracket forbids."""
        problems = generator.generate_problems_with_constraints(
            make_pet(), "3-5", exact_count=2, problem_types=[ProblemType.BROKEN, ProblemType.DIRTY]
        )
        assert problems
        assert all(p.problem_type == ProblemType.DIRTY for p in problems)

    def test_disallowed_types_only_yields_empty_set(self, generator):
        """Only forbidden types means no problems."""
        problems = generator.generate_problems_with_constraints(
            make_pet(), "3-5", exact_count=2, problem_types=[ProblemType.BROKEN]
        )
        assert problems == []

    def test_severity_override_cannot_exceed_bracket(self, generator):
        """Severity overrides are capped at the bracket maximum."""
        for _ in range(20):
            problems = generator.generate_problems_with_constraints(make_pet(), "6-8", max_severity=3)
            assert all(p.severity <= 2 for p in problems)

    def test_component_override(self, generator):
        """Component overrides narrow the candidate parts."""
        problems = generator.generate_problems_with_constraints(
            make_pet(), "9-12", exact_count=3, components=[ComponentType.SENSOR_ARRAY]
        )
        assert [p.component for p in problems] == [ComponentType.SENSOR_ARRAY]


class TestValidation:
    """Checking a problem set against its bracket."""

    def test_empty_set_is_invalid(self, generator):
        """An empty set fails validation."""
        result = generator.validate_problem_set([], "6-8")
        assert result.is_valid is False
        assert "No problems generated" in result.issues

    def test_out_of_bracket_problems_are_reported(self, generator):
        """Every way a problem breaks the bracket is reported."""
        problems = [
            make_problem(ComponentType.MOTOR_SYSTEM, ProblemType.BROKEN, severity=3, problem_id="p1"),
        ]
        result = generator.validate_problem_set(problems, "3-5")
        assert result.is_valid is False
        assert any("severity" in issue for issue in result.issues)
        assert any("Invalid problem types" in issue for issue in result.issues)
        assert any("Invalid components" in issue for issue in result.issues)

    def test_too_many_problems(self, generator):
        """Oversized sets are reported with a variety suggestion."""
        problems = [
            make_problem(ComponentType.POWER_CORE, ProblemType.DIRTY, problem_id="p1"),
            make_problem(ComponentType.CHASSIS_PLATING, ProblemType.DIRTY, problem_id="p2"),
            make_problem(ComponentType.CHASSIS_PLATING, ProblemType.LOW_POWER, problem_id="p3"),
        ]
        result = generator.validate_problem_set(problems, "3-5")
        assert result.is_valid is False
        assert any("Too many problems" in issue for issue in result.issues)
        assert "Consider using different components for variety" in result.suggestions

    def test_cues_above_ceiling_are_reported(self, generator):
        """Cues brighter than the bracket allows are reported."""
        cues = create_visual_cues(ProblemType.DIRTY, 3, Position(x=0, y=0), ceiling=1.0)
        problem = make_problem(ComponentType.POWER_CORE, ProblemType.DIRTY, severity=2).model_copy(
            update={"visual_cues": cues}
        )
        result = generator.validate_problem_set([problem], "9-12")
        assert any("intensity ceiling" in issue for issue in result.issues)


class TestVisualCues:
    """Visual cue shapes and weights."""

    def test_cues_scale_with_ceiling(self):
        """Cue intensity is scaled by the bracket ceiling."""
        at = Position(x=10, y=10)
        full = create_visual_cues(ProblemType.BROKEN, 3, at, ceiling=1.0)
        dimmed = create_visual_cues(ProblemType.BROKEN, 3, at, ceiling=0.6)
        assert [c.type for c in full] == ["spark", "smoke"]
        assert dimmed[0].intensity == pytest.approx(0.6)

    def test_low_power_has_minimum_glow(self):
        """Low-power warnings never fade below a minimum glow."""
        cues = create_visual_cues(ProblemType.LOW_POWER, 1, Position(x=0, y=0))
        assert cues[0].intensity >= 0.3

    def test_weights_must_be_non_negative(self, generator):
        """Weights must be non-negative."""
        with pytest.raises(ValueError):
            generator.update_problem_type_weights({ProblemType.DIRTY: -1})
        generator.update_component_weights({ComponentType.POWER_CORE: 0.9})
        assert generator.component_weights[ComponentType.POWER_CORE] == 0.9


def test_bracket_enum_values():
    assert [a.value for a in AgeGroup] == BRACKETS
