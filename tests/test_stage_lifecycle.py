"""
Process-stage lifecycle tests.

Covers:
    - default stage creation (14 rows, fixed order, contract started)
    - update_stage: status/date patches, delay_reason clearing, date rule
    - move_to_next_stage: advancing through all 14 stages
    - stage-plan validator and progress calculation
    - audit rows for stage writes
"""

from datetime import date

import pytest

from fabtrack.core.exceptions import NotFoundError, ValidationError
from fabtrack.models import db
from fabtrack.models.audit import AuditLog
from fabtrack.models.project import PROCESS_STAGES, ProcessStage, Project
from fabtrack.services import stage_lifecycle


# ── Helpers ──────────────────────────────────────────────────────────────


def _stages(project_id):
    return (
        ProcessStage.query.filter_by(project_id=project_id)
        .order_by(ProcessStage.stage_order)
        .all()
    )


def _bare_project():
    p = Project(
        site_name="Bare", product_name="Gate", outsourcing_company="Acme",
        order_date=date(2026, 1, 1), expected_completion_date=date(2026, 3, 1),
        installation_request_date=date(2026, 2, 20),
    )
    db.session.add(p)
    db.session.flush()
    return p


# ═════════════════════════════════════════════════════════════════════════
# CREATION
# ═════════════════════════════════════════════════════════════════════════


class TestCreateDefaultStages:
    def test_creates_fourteen_ordered_stages(self):
        p = _bare_project()
        rows = stage_lifecycle.create_default_stages(p.id)
        db.session.commit()

        assert [r.stage_name for r in rows] == list(PROCESS_STAGES)
        assert sorted(r.stage_order for r in _stages(p.id)) == list(range(1, 15))

    def test_contract_starts_in_progress_by_default(self):
        p = _bare_project()
        rows = stage_lifecycle.create_default_stages(p.id)
        assert rows[0].stage_name == "contract"
        assert rows[0].status == "in_progress"
        assert all(r.status == "waiting" for r in rows[1:])

    def test_overrides_are_taken_as_given(self):
        p = _bare_project()
        rows = stage_lifecycle.create_default_stages(
            p.id, overrides={"design": {"status": "in_progress", "start_date": "2026-01-10"}},
        )
        by_name = {r.stage_name: r for r in rows}
        assert by_name["contract"].status == "waiting"
        assert by_name["design"].status == "in_progress"
        assert by_name["design"].start_date == date(2026, 1, 10)

    def test_second_call_is_rejected(self):
        p = _bare_project()
        stage_lifecycle.create_default_stages(p.id)
        with pytest.raises(ValidationError):
            stage_lifecycle.create_default_stages(p.id)

    def test_unknown_override_stage(self):
        p = _bare_project()
        with pytest.raises(ValidationError):
            stage_lifecycle.create_default_stages(p.id, overrides={"polishing": {"status": "waiting"}})

    def test_project_fixture_orders_are_contiguous(self, project):
        orders = [s.stage_order for s in _stages(project.id)]
        assert orders == list(range(1, 15))


# ═════════════════════════════════════════════════════════════════════════
# UPDATE
# ═════════════════════════════════════════════════════════════════════════


class TestUpdateStage:
    def test_status_and_dates_applied(self, project):
        stage = stage_lifecycle.update_stage(
            project.id, "design",
            {"status": "in_progress", "start_date": "2026-01-21", "end_date": "2026-02-10"},
        )
        assert stage.status == "in_progress"
        assert stage.start_date == date(2026, 1, 21)
        assert stage.end_date == date(2026, 2, 10)

    def test_delay_reason_cleared_when_leaving_delayed(self, project):
        stage_lifecycle.update_stage(project.id, "design", {"status": "delayed", "delay_reason": "late drawings"})
        assert project.stage("design").delay_reason == "late drawings"

        stage = stage_lifecycle.update_stage(project.id, "design", {"status": "in_progress"})
        assert stage.delay_reason is None

    def test_delay_reason_ignored_unless_delayed(self, project):
        stage = stage_lifecycle.update_stage(project.id, "order", {"delay_reason": "stray"})
        assert stage.delay_reason is None

    def test_contract_cannot_lose_start_date(self, project):
        with pytest.raises(ValidationError) as exc:
            stage_lifecycle.update_stage(project.id, "contract", {"start_date": None})
        assert "contract" in exc.value.details
        assert project.stage("contract").start_date == date(2026, 1, 5)

    def test_completion_cannot_lose_end_date(self, project):
        with pytest.raises(ValidationError):
            stage_lifecycle.update_stage(project.id, "completion", {"end_date": ""})

    def test_completion_status_change_allowed(self, project):
        stage = stage_lifecycle.update_stage(project.id, "completion", {"status": "in_progress"})
        assert stage.status == "in_progress"

    def test_invalid_status(self, project):
        with pytest.raises(ValidationError):
            stage_lifecycle.update_stage(project.id, "design", {"status": "paused"})

    def test_invalid_date(self, project):
        with pytest.raises(ValidationError) as exc:
            stage_lifecycle.update_stage(project.id, "design", {"start_date": "soon"})
        assert "start_date" in exc.value.details

    def test_unknown_stage(self, project):
        with pytest.raises(ValidationError):
            stage_lifecycle.update_stage(project.id, "polishing", {"status": "waiting"})

    def test_missing_project(self):
        with pytest.raises(NotFoundError):
            stage_lifecycle.update_stage(9999, "design", {"status": "waiting"})

    def test_audit_row_written(self, project, requester):
        stage_lifecycle.update_stage(project.id, "design", {"status": "in_progress"}, actor_id=requester.id)
        rows = AuditLog.query.filter_by(project_id=project.id, action="stage.update").all()
        assert len(rows) == 1
        assert rows[0].actor_user_id == requester.id
        assert "status" in rows[0].to_dict()["changes"]

    def test_noop_patch_writes_no_audit(self, project):
        stage_lifecycle.update_stage(project.id, "contract", {"status": "in_progress"})
        assert AuditLog.query.filter_by(action="stage.update").count() == 0

    def test_batch_update(self, project):
        rows = stage_lifecycle.update_stages(project.id, [
            {"stage_name": "contract", "status": "completed"},
            {"stage_name": "design", "status": "in_progress"},
        ])
        assert [r.status for r in rows] == ["completed", "in_progress"]
        assert db.session.get(Project, project.id).current_process_stage == "design"


# ═════════════════════════════════════════════════════════════════════════
# ADVANCE
# ═════════════════════════════════════════════════════════════════════════


class TestMoveToNextStage:
    def test_single_advance(self, project):
        today = date(2026, 2, 1)
        nxt = stage_lifecycle.move_to_next_stage(project.id, today=today)

        assert nxt.stage_name == "design"
        assert nxt.status == "in_progress"
        assert nxt.actual_start_date == today
        contract = project.stage("contract")
        assert contract.status == "completed"
        assert contract.actual_end_date == today
        assert db.session.get(Project, project.id).current_process_stage == "design"

    def test_runs_through_all_stages(self, project):
        for expected in PROCESS_STAGES[1:]:
            stage = stage_lifecycle.move_to_next_stage(project.id)
            assert stage.stage_name == expected

        assert stage_lifecycle.move_to_next_stage(project.id) is None
        assert all(s.status == "completed" for s in _stages(project.id))
        assert stage_lifecycle.move_to_next_stage(project.id) is None

    def test_no_in_progress_stage_is_noop(self, project):
        stage_lifecycle.update_stage(project.id, "contract", {"status": "completed"})
        assert stage_lifecycle.move_to_next_stage(project.id) is None
        assert all(s.status in ("completed", "waiting") for s in _stages(project.id))

    def test_earliest_in_progress_is_advanced(self, project):
        stage_lifecycle.update_stage(project.id, "laser", {"status": "in_progress"})
        nxt = stage_lifecycle.move_to_next_stage(project.id)
        assert nxt.stage_name == "design"
        assert project.stage("laser").status == "in_progress"

    def test_advance_audit_row(self, project):
        stage_lifecycle.move_to_next_stage(project.id)
        row = AuditLog.query.filter_by(action="stage.advance").one()
        assert row.to_dict()["changes"] == {"from": "contract", "to": "design"}

    def test_missing_project(self):
        with pytest.raises(NotFoundError):
            stage_lifecycle.move_to_next_stage(4242)


# ═════════════════════════════════════════════════════════════════════════
# VALIDATION & PROGRESS
# ═════════════════════════════════════════════════════════════════════════


def _plan(**fields):
    plan = {name: {"status": "waiting"} for name in PROCESS_STAGES}
    plan["contract"].update(start_date="2026-01-01", end_date="2026-01-10")
    plan["completion"].update(start_date="2026-05-01", end_date="2026-05-10")
    for name, value in fields.items():
        plan[name].update(value)
    return plan


class TestValidateStagePlan:
    def test_all_waiting_rejected(self):
        with pytest.raises(ValidationError) as exc:
            stage_lifecycle.validate_stage_plan(_plan())
        assert str(exc.value) == "No active stage"

    def test_completed_stage_counts_as_active(self):
        stage_lifecycle.validate_stage_plan(_plan(contract={"status": "completed"}))

    def test_missing_contract_start(self):
        with pytest.raises(ValidationError) as exc:
            stage_lifecycle.validate_stage_plan(_plan(contract={"status": "in_progress", "start_date": None}))
        assert "contract" in exc.value.details

    def test_missing_completion_end(self):
        with pytest.raises(ValidationError) as exc:
            stage_lifecycle.validate_stage_plan(_plan(design={"status": "in_progress"}, completion={"end_date": ""}))
        assert "completion" in exc.value.details

    def test_bad_status(self):
        with pytest.raises(ValidationError):
            stage_lifecycle.validate_stage_plan(_plan(design={"status": "done"}))

    def test_unparseable_date_reported_per_stage(self):
        with pytest.raises(ValidationError) as exc:
            stage_lifecycle.validate_stage_plan(_plan(contract={"status": "in_progress"}, design={"end_date": "31/31"}))
        assert str(exc.value) == "Invalid stage dates"
        assert "design.end_date" in exc.value.details

    def test_prepare_leaves_stage_untouched(self, project):
        stage = project.stage("contract")
        before = stage.start_date
        with pytest.raises(ValidationError):
            stage_lifecycle.prepare_stage_patch(stage, {"status": "completed", "start_date": None})
        assert stage.start_date == before
        assert stage.status == "in_progress"


class TestProgress:
    def test_rounds_to_whole_percent(self):
        stages = [{"status": "completed"}] + [{"status": "waiting"}] * 13
        assert stage_lifecycle.progress_percent(stages) == 7

    def test_half_done(self):
        stages = [{"status": "completed"}] * 7 + [{"status": "in_progress"}] * 7
        assert stage_lifecycle.progress_percent(stages) == 50

    def test_all_done(self, project):
        for _ in PROCESS_STAGES:
            stage_lifecycle.move_to_next_stage(project.id)
        assert stage_lifecycle.progress_percent(_stages(project.id)) == 100
