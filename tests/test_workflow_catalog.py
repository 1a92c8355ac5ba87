"""Tests for workflow template loading and lookup."""

import json

from skill_agency.workflows.registry import WorkflowCatalog
from skill_agency.workflows.schemas import WorkflowTemplate


def _workflow(workflow_id: str, skills_per_phase=(1,)) -> dict:
    return {
        "id": workflow_id,
        "name": workflow_id.title(),
        "phases": [
            {
                "name": f"Phase {i + 1}",
                "skills": [f"{workflow_id}-skill-{i}-{j}" for j in range(count)],
            }
            for i, count in enumerate(skills_per_phase)
        ],
    }


class TestBundledCatalog:
    """The catalog shipped with the package."""

    def test_loads_all_workflows_in_source_order(self):
        catalog = WorkflowCatalog()
        assert catalog.get_workflow_ids() == [
            "full-stack-saas-mvp",
            "ml-data-pipeline",
            "devops-infrastructure",
            "mobile-app",
            "backend-api",
        ]
        assert catalog.count() == 5

    def test_saas_workflow_shape(self):
        workflow = WorkflowCatalog().get("full-stack-saas-mvp")
        assert isinstance(workflow, WorkflowTemplate)
        assert [len(p.skills) for p in workflow.phases] == [3, 2, 4]
        assert workflow.total_skills == 9

    def test_unknown_id_returns_none(self):
        assert WorkflowCatalog().get("no-such-workflow") is None

    def test_summaries_carry_counts(self):
        summaries = {s.id: s for s in WorkflowCatalog().list_all()}
        saas = summaries["full-stack-saas-mvp"]
        assert saas.phase_count == 3
        assert saas.skill_count == 9

    def test_camel_case_wire_names(self):
        workflow = WorkflowCatalog().get("full-stack-saas-mvp")
        data = workflow.model_dump(by_alias=True)
        assert "estimatedTime" in data
        assert "decisionPoints" in data["phases"][0]


class TestMalformedSources:
    """Bad sources leave the catalog empty instead of failing."""

    def test_missing_file(self, tmp_path):
        catalog = WorkflowCatalog(tmp_path / "missing.json")
        assert catalog.load() == {}
        assert catalog.count() == 0

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "workflows.json"
        path.write_text("{not json")
        assert WorkflowCatalog(path).count() == 0

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "workflows.json"
        path.write_bytes(b'[{"id":"x","name":"\xff\xfe"}]')
        catalog = WorkflowCatalog(path)
        assert catalog.load() == {}
        assert catalog.count() == 0

    def test_non_list_root(self, tmp_path):
        path = tmp_path / "workflows.json"
        path.write_text(json.dumps({"id": "x"}))
        assert WorkflowCatalog(path).count() == 0

    def test_invalid_entry_is_skipped(self, tmp_path):
        path = tmp_path / "workflows.json"
        path.write_text(json.dumps([
            _workflow("good"),
            {"id": "bad", "name": "Missing phases"},
        ]))
        catalog = WorkflowCatalog(path)
        assert catalog.get_workflow_ids() == ["good"]

    def test_duplicate_decision_ids_rejected(self, tmp_path):
        entry = _workflow("dupes", (1, 1))
        for phase in entry["phases"]:
            phase["decisionPoints"] = [
                {"id": "same", "question": "?", "options": ["a"]}
            ]
        path = tmp_path / "workflows.json"
        path.write_text(json.dumps([entry]))
        assert WorkflowCatalog(path).count() == 0

    def test_duplicate_workflow_id_keeps_first(self, tmp_path):
        first = _workflow("same", (1,))
        second = _workflow("same", (2,))
        path = tmp_path / "workflows.json"
        path.write_text(json.dumps([first, second]))
        assert WorkflowCatalog(path).get("same").total_skills == 1


class TestDirectorySource:
    def test_one_template_per_file(self, tmp_path):
        (tmp_path / "a.json").write_text(json.dumps(_workflow("alpha")))
        (tmp_path / "b.json").write_text(json.dumps(_workflow("beta", (2, 1))))
        (tmp_path / "broken.json").write_text("[")
        (tmp_path / "c.json").write_bytes(b'{"id":"\xff\xfe"}')
        catalog = WorkflowCatalog(tmp_path)
        assert catalog.get_workflow_ids() == ["alpha", "beta"]
        assert catalog.get("beta").total_skills == 3

    def test_bare_skill_ids_get_names(self, tmp_path):
        (tmp_path / "a.json").write_text(json.dumps(_workflow("alpha")))
        skill = WorkflowCatalog(tmp_path).get("alpha").phases[0].skills[0]
        assert skill.id == "alpha-skill-0-0"
        assert skill.name == "Alpha Skill 0 0"
