"""
Current-stage resolver tests: the pure resolver and the pointer sync.
"""

from fabtrack.models import db
from fabtrack.models.project import PROCESS_STAGES, STAGE_ORDER, ProcessStage, Project
from fabtrack.services import stage_lifecycle
from fabtrack.services.current_stage import resolve_current_stage, sync_current_stage


def _rows(**statuses):
    return [
        {"stage_name": name, "stage_order": STAGE_ORDER[name], "status": statuses.get(name, "waiting")}
        for name in PROCESS_STAGES
    ]


class TestResolveCurrentStage:
    def test_lowest_order_active_stage_wins(self):
        rows = _rows(contract="completed", design="in_progress", order="delayed")
        assert resolve_current_stage(rows) == "design"

    def test_delayed_stage_counts_as_active(self):
        rows = _rows(contract="completed", design="completed", order="delayed", laser="in_progress")
        assert resolve_current_stage(rows) == "order"

    def test_input_order_does_not_matter(self):
        rows = list(reversed(_rows(welding="in_progress", plating="in_progress")))
        assert resolve_current_stage(rows) == "welding"

    def test_no_active_stage(self):
        assert resolve_current_stage(_rows(contract="completed")) is None
        assert resolve_current_stage([]) is None

    def test_repeated_calls_agree(self):
        rows = _rows(design="delayed", shipping="in_progress")
        assert resolve_current_stage(rows) == resolve_current_stage(rows) == "design"


class TestSyncCurrentStage:
    def test_pointer_follows_stage_updates(self, project):
        stage_lifecycle.update_stage(project.id, "laser", {"status": "in_progress"})
        assert db.session.get(Project, project.id).current_process_stage == "contract"

        stage_lifecycle.update_stage(project.id, "contract", {"status": "completed"})
        assert db.session.get(Project, project.id).current_process_stage == "laser"

        stage_lifecycle.update_stage(project.id, "design", {"status": "delayed", "delay_reason": "x"})
        assert db.session.get(Project, project.id).current_process_stage == "design"

    def test_pointer_left_alone_when_nothing_active(self, project):
        stage_lifecycle.update_stage(project.id, "laser", {"status": "in_progress"})
        stage_lifecycle.update_stage(project.id, "contract", {"status": "completed"})
        stage_lifecycle.update_stage(project.id, "laser", {"status": "completed"})

        assert db.session.get(Project, project.id).current_process_stage == "laser"

    def test_sync_returns_resolved_name(self, project):
        ProcessStage.query.filter_by(project_id=project.id, stage_name="panel").update({"status": "in_progress"})
        ProcessStage.query.filter_by(project_id=project.id, stage_name="contract").update({"status": "completed"})
        db.session.commit()

        assert sync_current_stage(project.id) == "panel"
        db.session.commit()
        assert db.session.get(Project, project.id).current_process_stage == "panel"

    def test_sync_is_idempotent(self, project):
        first = sync_current_stage(project.id)
        second = sync_current_stage(project.id)
        assert first == second == "contract"
