"""Unit tests for the task management reducer and orchestrator."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
import pytest
from common.enums import ActionType, HealthPlan, TaskPriority
from services.tasks.orchestrator import (
    TaskAction,
    TaskManagementOrchestrator,
    TaskManagementState,
    TaskNotFoundError,
    task_management_reducer,
)
from services.tasks.schemas import AutomationRule, RuleActions, RuleConditions, TaskFilter
from services.workflow.engine import WorkflowError


@pytest.fixture
def orchestrator(engine, hub, processor):
    return TaskManagementOrchestrator(engine=engine, hub=hub, processor=processor)


@pytest.fixture
def loaded(orchestrator, make_kaiser_record, make_health_net_record):
    """Orchestrator loaded with two Kaiser cases and one Health Net case."""
    records = [
        make_kaiser_record(status="T2038 Requested", due_in_days=-5, id="K-1", client_ID2="K-1",
                           satisfied_conditions=["t2038_received"]),
        make_kaiser_record(status="RN Visit Needed", due_in_days=2, id="K-2", client_ID2="K-2"),
        make_health_net_record(status="Scheduling ISP", due_in_days=10, client_ID2="HN-1"),
    ]
    orchestrator.load_tasks_sync(lambda: records)
    return orchestrator


class TestReducer:
    """Test the pure state transitions."""

    def test_input_state_is_not_modified(self, processor, make_task):
        state = TaskManagementState()
        tasks = [make_task(task_id="a"), make_task(task_id="b")]

        new_state = task_management_reducer(state, TaskAction(ActionType.SET_TASKS, tasks), processor)

        assert state.tasks == []
        assert [task.id for task in new_state.tasks] == ["a", "b"]
        assert new_state.analytics.total_tasks == 2
        assert sum(group.count for group in new_state.task_groups.values()) == 2

    def test_set_filter_recomputes_views(self, processor, make_task):
        tasks = [
            make_task(task_id="k", health_plan=HealthPlan.KAISER, due_in_days=-1),
            make_task(task_id="h", health_plan=HealthPlan.HEALTH_NET, due_in_days=-1),
        ]
        state = task_management_reducer(TaskManagementState(), TaskAction(ActionType.SET_TASKS, tasks), processor)

        state = task_management_reducer(
            state, TaskAction(ActionType.SET_FILTER, {"health_plan": ["Health Net"]}), processor
        )

        assert [task.id for task in state.filtered_tasks] == ["h"]
        assert state.task_groups["overdue"].count == 1
        # analytics still cover every task
        assert state.analytics.total_tasks == 2

    def test_update_task_refreshes_derived_fields(self, processor, make_task, today):
        tasks = [make_task(task_id="a", status="RN Visit Needed", due_in_days=10)]
        state = task_management_reducer(TaskManagementState(), TaskAction(ActionType.SET_TASKS, tasks), processor)

        state = task_management_reducer(
            state,
            TaskAction(ActionType.UPDATE_TASK, {"id": "a", "updates": {"due_date": today - timedelta(days=30)}}),
            processor,
            today=today,
        )

        task = state.tasks[0]
        assert task.is_overdue
        assert task.priority_score is not None
        assert task.next_status == "RN/MSW Scheduled"
        assert state.analytics.overdue_tasks == 1

    def test_update_unknown_task_is_a_no_op(self, processor, make_task):
        tasks = [make_task(task_id="a")]
        state = task_management_reducer(TaskManagementState(), TaskAction(ActionType.SET_TASKS, tasks), processor)

        new_state = task_management_reducer(
            state, TaskAction(ActionType.UPDATE_TASK, {"id": "zzz", "updates": {"notes": "x"}}), processor
        )

        assert new_state.tasks == state.tasks

    def test_set_error_clears_loading(self, processor):
        state = task_management_reducer(TaskManagementState(), TaskAction(ActionType.SET_LOADING, True), processor)
        state = task_management_reducer(state, TaskAction(ActionType.SET_ERROR, "boom"), processor)
        assert state.error == "boom"
        assert not state.is_loading

    def test_automation_rule_upsert(self, processor):
        rule = AutomationRule(id="r1", name="Rule", conditions=RuleConditions(status="On-Hold"), actions=RuleActions())
        state = task_management_reducer(
            TaskManagementState(), TaskAction(ActionType.UPDATE_AUTOMATION_RULE, rule), processor
        )
        renamed = rule.model_copy(update={"name": "Renamed"})
        state = task_management_reducer(state, TaskAction(ActionType.UPDATE_AUTOMATION_RULE, renamed), processor)

        assert [r.name for r in state.automation_rules] == ["Renamed"]


class TestLoading:
    """Test loading tasks from a record source."""

    def test_sync_load(self, loaded):
        state = loaded.state
        assert not state.is_loading
        assert state.error is None
        assert len(state.tasks) == 3
        assert state.tasks[0].id == "K-1"
        assert state.tasks[0].priority == TaskPriority.HIGH

    def test_async_load(self, orchestrator, make_kaiser_record):
        async def fetch():
            return [make_kaiser_record(id="K-9", client_ID2="K-9")]

        state = asyncio.run(orchestrator.load_tasks(fetch))

        assert [task.id for task in state.tasks] == ["K-9"]
        assert not state.is_loading

    def test_failed_load_keeps_previous_tasks(self, loaded):
        def broken():
            raise ConnectionError("source unavailable")

        state = loaded.load_tasks_sync(broken)

        assert state.error == "source unavailable"
        assert not state.is_loading
        assert len(state.tasks) == 3

    def test_next_load_clears_error(self, loaded, make_kaiser_record):
        loaded.load_tasks_sync(lambda: 1 / 0)
        assert loaded.state.error

        loaded.load_tasks_sync(lambda: [make_kaiser_record()])
        assert loaded.state.error is None
        assert len(loaded.state.tasks) == 1

    def test_missing_source(self, orchestrator):
        state = orchestrator.load_tasks_sync()
        assert state.error == "No case record source configured"


class TestReadsAndWrites:
    """Test orchestrator helpers."""

    def test_get_task(self, loaded):
        assert loaded.get_task("K-2").current_status == "RN Visit Needed"
        with pytest.raises(TaskNotFoundError):
            loaded.get_task("missing")

    def test_update_task_status_with_note_and_due_date(self, loaded):
        task = loaded.update_task_status("K-2", "RN/MSW Scheduled", update_due_date=True, add_note="Booked")

        assert task.current_status == "RN/MSW Scheduled"
        assert task.next_status == "RN Visit Complete"
        assert task.notes.endswith("Booked")
        assert task.has_due_date
        assert not task.is_overdue

    def test_transition_task_rejects_skips(self, loaded):
        with pytest.raises(WorkflowError):
            loaded.transition_task("K-2", "RN Visit Complete")
        assert loaded.get_task("K-2").current_status == "RN Visit Needed"

    def test_transition_task(self, loaded):
        assert loaded.transition_task("K-2", "RN/MSW Scheduled").current_status == "RN/MSW Scheduled"

    def test_assign_task(self, loaded):
        assert loaded.assign_task("K-2", "ann").assigned_to == "ann"
        assert loaded.get_staff_workload()["ann"] == 1

    def test_bulk_update_skips_unknown_ids(self, loaded):
        updated = loaded.bulk_update_tasks(["K-1", "nope", "K-2"], {"assigned_to": "bob"})

        assert [task.id for task in updated] == ["K-1", "K-2"]
        assert all(task.assigned_to == "bob" for task in loaded.state.tasks if task.id.startswith("K-"))
        assert loaded.get_task("HN-1").assigned_to != "bob"

    def test_set_filter_and_search(self, loaded):
        filtered = loaded.set_filter(TaskFilter(health_plan=[HealthPlan.KAISER]))
        assert {task.id for task in filtered} == {"K-1", "K-2"}
        assert loaded.search_tasks("HN-1") == []
        assert [task.id for task in loaded.search_tasks("k-2")] == ["K-2"]

    def test_assignment_recommendation(self, loaded):
        loaded.assign_task("K-1", "ann")
        recommendation = loaded.get_assignment_recommendation("K-2", ["ann", "bob"])
        assert recommendation.staff == "bob"

    def test_update_prioritization_config(self, loaded):
        config = loaded.update_prioritization_config({"thresholds": {"critical": 95, "high": 90}})
        assert loaded.state.prioritization_config == config
        assert loaded.hub.get_prioritization_config().thresholds.high == 90

    def test_config_change_rescores_tasks(self, loaded):
        assert loaded.get_task("K-1").priority != TaskPriority.LOW

        loaded.update_prioritization_config({"thresholds": {"critical": 99, "high": 98, "medium": 97}})

        assert all(task.priority == TaskPriority.LOW for task in loaded.state.tasks)
        assert loaded.state.analytics.priority_distribution[TaskPriority.LOW] == 3
        assert loaded.hub.get_priority_recommendation(loaded.get_task("K-1"), loaded.context).should_update is False

    def test_concurrent_updates_all_apply(self, orchestrator, make_task):
        """Test that updates from parallel request threads are not lost."""
        orchestrator.set_tasks([make_task(task_id=f"T-{n}") for n in range(40)])

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda n: orchestrator.assign_task(f"T-{n}", f"staff-{n}"), range(40)))

        assert {task.id: task.assigned_to for task in orchestrator.state.tasks} == {
            f"T-{n}": f"staff-{n}" for n in range(40)
        }


class TestAutomation:
    """Test auto-advance and automation rules."""

    def test_auto_advance_with_recorded_conditions(self, loaded):
        assert loaded.get_task("K-1").can_auto_advance

        result = loaded.auto_advance_task("K-1")

        assert result.success
        task = loaded.get_task("K-1")
        assert task.current_status == "T2038 received, Need First Contact"
        assert task.due_date == result.due_date
        assert task.satisfied_conditions == []
        assert not task.can_auto_advance

    def test_auto_advance_failure_leaves_task(self, loaded):
        result = loaded.auto_advance_task("K-2", [])

        assert not result.success
        assert loaded.get_task("K-2").current_status == "RN Visit Needed"

    def test_auto_advance_eligible_tasks(self, loaded):
        results = loaded.auto_advance_eligible_tasks()
        assert list(results) == ["K-1"]
        assert results["K-1"].success

    def test_disabled_automation(self, loaded):
        assert loaded.toggle_automation(False) is False
        assert loaded.auto_advance_eligible_tasks() == {}
        assert loaded.process_automation_rules("HN-1") == []
        assert loaded.get_task("K-1").current_status == "T2038 Requested"

    def test_upsert_automation_rule(self, loaded):
        rule = loaded.upsert_automation_rule(
            {
                "id": "overdue-escalation",
                "name": "Escalate overdue",
                "enabled": False,
                "conditions": {"status": "*", "days_in_status": -3},
                "actions": {"add_note": "Escalate overdue case"},
            }
        )

        assert not rule.enabled
        assert not next(r for r in loaded.engine.get_automation_rules() if r.id == rule.id).enabled
        assert not next(r for r in loaded.state.automation_rules if r.id == rule.id).enabled
