"""
Project service tests.

Covers:
    - create/update validation (required fields, active stage, mandatory dates)
    - list filters, sorting, pagination and favorites
    - dashboard statistics
    - delete with attachment blob removal
"""

import pytest

from fabtrack.core.exceptions import NotFoundError, ValidationError
from fabtrack.models import db
from fabtrack.models.history_log import HistoryLog
from fabtrack.models.project import ProcessStage, Project
from fabtrack.services import activity_log, project_service, stage_lifecycle


# ═════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════


class TestCreateProject:
    def test_creates_project_with_stages(self, requester, approver, project_payload, dated_stages):
        p = project_service.create_project(
            project_payload(approver.id, requester.id), stages=dated_stages(), creator_id=requester.id,
        )
        assert p.id is not None
        assert len(p.process_stages) == 14
        assert p.current_process_stage == "contract"
        assert p.created_by == requester.id
        assert p.last_saved_at is not None

    def test_missing_contract_start_date_fails(self, requester, approver, project_payload, dated_stages):
        stages = dated_stages(contract={"start_date": None})
        with pytest.raises(ValidationError):
            project_service.create_project(project_payload(approver.id, requester.id), stages=stages)
        assert Project.query.count() == 0

    def test_missing_completion_end_date_fails_then_succeeds(
        self, requester, approver, project_payload, dated_stages,
    ):
        payload = project_payload(approver.id, requester.id)
        with pytest.raises(ValidationError):
            project_service.create_project(payload, stages=dated_stages(completion={"end_date": None}))

        p = project_service.create_project(payload, stages=dated_stages())
        assert p.stage("completion").end_date is not None

    def test_default_plan_needs_dates(self, requester, approver, project_payload):
        with pytest.raises(ValidationError) as exc:
            project_service.create_project(project_payload(approver.id, requester.id))
        assert "contract" in exc.value.details
        assert "completion" in exc.value.details

    def test_all_waiting_fails(self, requester, approver, project_payload, dated_stages):
        stages = dated_stages(contract={"status": "waiting"})
        with pytest.raises(ValidationError) as exc:
            project_service.create_project(project_payload(approver.id, requester.id), stages=stages)
        assert str(exc.value) == "No active stage"

    def test_bad_actual_date_rejected_before_insert(self, requester, approver, project_payload, dated_stages):
        stages = dated_stages(design={"actual_start_date": "yesterday-ish"})
        with pytest.raises(ValidationError) as exc:
            project_service.create_project(project_payload(approver.id, requester.id), stages=stages)
        assert "design.actual_start_date" in exc.value.details
        assert Project.query.count() == 0

    def test_later_stage_can_be_initial(self, requester, approver, project_payload, dated_stages):
        stages = dated_stages(contract={"status": "completed"}, design={"status": "in_progress"})
        p = project_service.create_project(project_payload(approver.id, requester.id), stages=stages)
        assert p.current_process_stage == "design"

    def test_list_shaped_stage_input(self, requester, approver, project_payload, dated_stages):
        stages = [{"stage_name": k, **v} for k, v in dated_stages().items()]
        p = project_service.create_project(project_payload(approver.id, requester.id), stages=stages)
        assert p.stage("contract").status == "in_progress"

    def test_required_fields(self, requester, approver, project_payload, dated_stages):
        payload = project_payload(approver.id, requester.id, site_name="", order_date=None)
        with pytest.raises(ValidationError) as exc:
            project_service.create_project(payload, stages=dated_stages())
        assert set(exc.value.details) >= {"site_name", "order_date"}

    def test_unknown_manager(self, requester, project_payload, dated_stages):
        with pytest.raises(ValidationError) as exc:
            project_service.create_project(project_payload(777, requester.id), stages=dated_stages())
        assert "sales_manager_id" in exc.value.details

    def test_bad_quantity(self, requester, approver, project_payload, dated_stages):
        payload = project_payload(approver.id, requester.id, product_quantity=0)
        with pytest.raises(ValidationError):
            project_service.create_project(payload, stages=dated_stages())


# ═════════════════════════════════════════════════════════════════════════
# UPDATE
# ═════════════════════════════════════════════════════════════════════════


class TestUpdateProject:
    def test_field_update(self, project):
        p = project_service.update_project(project.id, {"notes": "crane booked", "is_urgent": True})
        assert p.notes == "crane booked"
        assert p.is_urgent is True

    def test_clearing_required_field_fails(self, project):
        with pytest.raises(ValidationError):
            project_service.update_project(project.id, {"site_name": "  "})

    def test_stage_patch_runs_plan_validation(self, project):
        with pytest.raises(ValidationError):
            project_service.update_project(project.id, {}, stages={"completion": {"end_date": None}})
        assert db.session.get(Project, project.id).stage("completion").end_date is not None

    def test_bad_stage_date_leaves_no_partial_write(self, project):
        with pytest.raises(ValidationError) as exc:
            project_service.update_project(
                project.id, {"site_name": "Leaked"}, stages={"design": {"start_date": "soon"}},
            )
        assert "design.start_date" in exc.value.details

        # a later commit in the same session must not carry the rejected change
        stage_lifecycle.update_stage(project.id, "order", {"status": "in_progress"})
        assert db.session.get(Project, project.id).site_name == "Harbor Tower"

    def test_stage_patch_cannot_leave_all_waiting(self, project):
        with pytest.raises(ValidationError):
            project_service.update_project(project.id, {}, stages={"contract": {"status": "waiting"}})

    def test_stage_patch_updates_pointer(self, project):
        p = project_service.update_project(
            project.id, {},
            stages={"contract": {"status": "completed"}, "design": {"status": "in_progress"}},
        )
        assert p.current_process_stage == "design"

    def test_unknown_project(self):
        with pytest.raises(NotFoundError):
            project_service.update_project(31337, {"notes": "x"})


# ═════════════════════════════════════════════════════════════════════════
# LIST / STATS / FAVORITES
# ═════════════════════════════════════════════════════════════════════════


class TestListProjects:
    def _seed(self, requester, approver, project_payload, dated_stages):
        for i, (site, urgent) in enumerate([("North Yard", False), ("South Dock", True), ("East Mill", False)]):
            project_service.create_project(
                project_payload(approver.id, requester.id, site_name=site, is_urgent=urgent,
                                order_date=f"2026-0{i + 1}-01"),
                stages=dated_stages(),
            )

    def test_pagination(self, requester, approver, project_payload, dated_stages):
        self._seed(requester, approver, project_payload, dated_stages)
        result = project_service.list_projects(page=1, page_size=2)
        assert result["total"] == 3
        assert len(result["projects"]) == 2
        assert project_service.list_projects(page=2, page_size=2)["projects"][0]["site_name"] == "North Yard"

    def test_search_and_urgent_filters(self, requester, approver, project_payload, dated_stages):
        self._seed(requester, approver, project_payload, dated_stages)
        assert project_service.list_projects({"search": "dock"})["total"] == 1
        assert project_service.list_projects({"is_urgent": True})["projects"][0]["site_name"] == "South Dock"

    def test_order_date_range_and_sort(self, requester, approver, project_payload, dated_stages):
        self._seed(requester, approver, project_payload, dated_stages)
        result = project_service.list_projects(
            {"order_date_from": "2026-02-01"}, sort="order_date", direction="asc",
        )
        assert [p["site_name"] for p in result["projects"]] == ["South Dock", "East Mill"]

    def test_progress_in_rows(self, project):
        row = project_service.list_projects()["projects"][0]
        assert row["progress"] == 0
        assert row["is_favorite"] is False

    def test_favorites(self, project, requester):
        assert project_service.toggle_favorite(project.id, requester.id) is True
        result = project_service.list_projects({"favorites_only": True}, user_id=requester.id)
        assert result["total"] == 1
        assert result["projects"][0]["is_favorite"] is True

        assert project_service.toggle_favorite(project.id, requester.id) is False
        assert project_service.list_projects({"favorites_only": True}, user_id=requester.id)["total"] == 0

    def test_favorites_only_needs_user(self, project):
        with pytest.raises(ValidationError):
            project_service.list_projects({"favorites_only": True})


class TestStats:
    def test_counts(self, project):
        stats = project_service.project_stats()
        assert stats["total"] == 1
        assert stats["urgent"] == 0
        assert stats["by_status"]["in_progress"] == 1
        assert stats["by_status"]["waiting"] == 13
        assert stats["by_stage"]["contract"] == 1


# ═════════════════════════════════════════════════════════════════════════
# DELETE
# ═════════════════════════════════════════════════════════════════════════


class TestDeleteProject:
    def test_delete_cascades_and_removes_blobs(self, project, requester, storage):
        storage.save("projects/1/photo.jpg", b"jpeg")
        activity_log.create_manual_log(
            project.id, requester.id, "production", "welding done",
            attachments=[{"file_path": "projects/1/photo.jpg", "file_name": "photo.jpg"}],
        )

        project_service.delete_project(project.id, actor_id=requester.id, storage=storage)

        assert db.session.get(Project, project.id) is None
        assert ProcessStage.query.count() == 0
        assert HistoryLog.query.count() == 0
        assert not storage.exists("projects/1/photo.jpg")

    def test_delete_missing(self):
        with pytest.raises(NotFoundError):
            project_service.delete_project(5150)
