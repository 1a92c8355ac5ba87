"""Tests for skill definitions, parameter validation and dry runs."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from skill_agency.skills.registry import SkillRegistry
from skill_agency.skills.schemas import ParameterSpec, SkillDefinition
from skill_agency.skills.validation import (
    build_plan,
    dry_run,
    format_seconds,
    resolve_parameters,
    validate_parameters,
)
from skill_agency.workflows.schemas import SkillRef


@pytest.fixture(scope="module")
def registry() -> SkillRegistry:
    return SkillRegistry()


@pytest.fixture(scope="module")
def scaffold(registry) -> SkillDefinition:
    return registry.get("project-scaffold")


class TestSkillRegistry:
    def test_bundled_skills_load(self, registry):
        assert registry.count() == 6
        assert registry.get("project-scaffold") is not None

    def test_scaffold_has_five_steps(self, scaffold):
        assert len(scaffold.steps) == 5
        assert [s.critical for s in scaffold.steps].count(True) == 2

    def test_resolve_registered(self, registry, scaffold):
        assert registry.resolve(SkillRef(id="project-scaffold")) is scaffold

    def test_resolve_unregistered_synthesizes_single_step(self, registry):
        skill = registry.resolve(SkillRef(id="landing-page", name="Landing Page"))
        assert skill.id == "landing-page"
        assert len(skill.steps) == 1
        assert skill.steps[0].name == "Execute Landing Page"

    def test_invalid_file_is_skipped(self, tmp_path):
        (tmp_path / "good.yaml").write_text(
            "id: good\nname: Good\nsteps:\n  - id: one\n    name: One\n"
        )
        (tmp_path / "no-steps.yaml").write_text("id: bad\nname: Bad\nsteps: []\n")
        (tmp_path / "broken.yaml").write_text("id: [unclosed\n")
        registry = SkillRegistry(tmp_path)
        assert [s.id for s in registry.list_definitions()] == ["good"]

    def test_undecodable_file_is_skipped(self, tmp_path):
        (tmp_path / "bad.yaml").write_bytes(b"id: bad\nname: \xff\xfe\n")
        registry = SkillRegistry(tmp_path)
        assert registry.count() == 0
        assert registry.get("bad") is None
        assert registry.list_all() == []

    def test_select_without_options_rejected(self):
        with pytest.raises(PydanticValidationError):
            ParameterSpec(name="mode", type="select")

    def test_bad_pattern_rejected(self):
        with pytest.raises(PydanticValidationError):
            ParameterSpec(name="x", validation="([")


class TestValidateParameters:
    """Violations are collected, with defaults applied first."""

    def test_missing_required_reports_label(self, scaffold):
        errors = validate_parameters(scaffold, resolve_parameters(scaffold, {}))
        assert errors == ["Missing required parameter: Project Name"]

    @pytest.mark.parametrize("blank", [None, "", "   "])
    def test_blank_counts_as_missing(self, scaffold, blank):
        errors = validate_parameters(
            scaffold, resolve_parameters(scaffold, {"projectName": blank})
        )
        assert errors == ["Missing required parameter: Project Name"]

    def test_valid_parameters(self, scaffold):
        params = resolve_parameters(scaffold, {"projectName": "my-app"})
        assert validate_parameters(scaffold, params) == []
        assert params["language"] == "typescript"
        assert params["includeTests"] is True

    def test_pattern_mismatch(self, scaffold):
        errors = validate_parameters(
            scaffold, resolve_parameters(scaffold, {"projectName": "My App"})
        )
        assert errors == [
            "Invalid value for Project Name: does not match the required format"
        ]

    def test_select_outside_options(self, scaffold):
        errors = validate_parameters(
            scaffold, {"projectName": "app", "language": "cobol", "includeTests": True}
        )
        assert errors == [
            "Invalid value for Language: must be one of typescript, javascript, python"
        ]

    def test_boolean_type(self, scaffold):
        errors = validate_parameters(
            scaffold, {"projectName": "app", "language": "python", "includeTests": "yes"}
        )
        assert errors == ["Invalid value for Include test setup: expected true or false"]

    def test_all_violations_collected(self, scaffold):
        errors = validate_parameters(scaffold, {"language": "cobol", "includeTests": 1})
        assert len(errors) == 3

    def test_undeclared_parameters_ignored(self, scaffold):
        params = resolve_parameters(scaffold, {"projectName": "app", "extra": "x"})
        assert validate_parameters(scaffold, params) == []


class TestDryRun:
    def test_invalid_has_no_plan(self, scaffold):
        result = dry_run(scaffold, {})
        assert result.valid is False
        assert result.errors == ["Missing required parameter: Project Name"]
        assert result.dry_run_preview is None

    def test_plan_lists_steps_in_order(self, scaffold):
        result = dry_run(scaffold, {"projectName": "my-app"})
        assert result.valid is True
        plan = result.dry_run_preview
        assert [s.order for s in plan.steps] == [1, 2, 3, 4, 5]
        assert [s.step_id for s in plan.steps] == [s.id for s in scaffold.steps]
        assert plan.estimated_output_files == 5
        assert plan.estimated_total_time == scaffold.estimated_time

    def test_estimate_from_delays(self):
        skill = SkillDefinition(
            id="s",
            name="S",
            steps=[
                {"id": "a", "name": "A"},
                {"id": "b", "name": "B", "critical": True},
            ],
        )
        plan = build_plan(skill, step_delay=30, critical_step_delay=60)
        assert plan.estimated_total_time == "1m 30s"

    def test_wire_shape(self, scaffold):
        data = dry_run(scaffold, {"projectName": "my-app"}).model_dump(by_alias=True)
        assert set(data) == {"valid", "errors", "dryRunPreview"}
        assert set(data["dryRunPreview"]["steps"][0]) == {
            "order", "stepId", "stepName", "critical",
        }


@pytest.mark.parametrize(
    "seconds, label",
    [(0, "0s"), (45, "45s"), (60, "1m"), (150, "2m 30s")],
)
def test_format_seconds(seconds, label):
    assert format_seconds(seconds) == label
