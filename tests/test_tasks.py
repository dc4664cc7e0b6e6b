"""
Tests del ciclo de vida de las tareas.
"""

from datetime import date

import pytest

import clock
from errors import Conflict, Forbidden, NotFound, ValidationFailure
from models import DailyProgress, RewardHistory, RewardReason, Task, User
from schemas import TaskCreate, TaskUpdate
from tasks import (
    complete_task, create_task, delete_task, get_owned_task, get_task_statistics,
    list_tasks, start_task, update_task
)

DAY = date(2026, 3, 11)


def test_create_task_computes_reward(db, user):
    task = create_task(db, user, TaskCreate(
        title="Tax return", difficulty_level=5, energy_required=5,
        estimated_duration=30, priority=5, tags=["admin"],
    ), today=DAY)

    assert task.reward_points == 31
    assert task.status == "pending"
    assert task.tags == ["admin"]

    progress = db.query(DailyProgress).one()
    assert progress.date == DAY
    assert progress.tasks_created == 1


def test_create_task_with_defaults(db, user):
    task = create_task(db, user, TaskCreate(title="Laundry"), today=DAY)
    assert task.reward_points == 18
    assert task.priority == 2
    assert task.difficulty_level == 3


def test_subtasks_are_nested_one_level(db, user):
    parent = create_task(db, user, TaskCreate(title="Move house"), today=DAY)
    child = create_task(db, user, TaskCreate(title="Pack books", parent_task_id=parent.id), today=DAY)

    with pytest.raises(ValidationFailure):
        create_task(db, user, TaskCreate(title="Find boxes", parent_task_id=child.id), today=DAY)

    top_level = list_tasks(db, user)
    assert [t.id for t in top_level] == [parent.id]
    assert [s.id for s in top_level[0].subtasks] == [child.id]


def test_missing_and_foreign_tasks(db, make_user):
    owner = make_user("ada")
    other = make_user("bob")
    task = create_task(db, owner, TaskCreate(title="Private"), today=DAY)

    with pytest.raises(NotFound):
        get_owned_task(db, owner, 9999)
    with pytest.raises(Forbidden):
        get_owned_task(db, other, task.id)
    with pytest.raises(Forbidden):
        complete_task(db, other, task.id, today=DAY)


def test_complete_twice_conflicts(db, user):
    task = create_task(db, user, TaskCreate(title="Dishes"), today=DAY)
    complete_task(db, user, task.id, today=DAY)

    with pytest.raises(Conflict):
        complete_task(db, user, task.id, today=DAY)


def test_archived_task_cannot_be_completed(db, user):
    task = create_task(db, user, TaskCreate(title="Old idea"), today=DAY)
    update_task(db, user, task.id, TaskUpdate(status="archived"))

    with pytest.raises(Conflict):
        complete_task(db, user, task.id, today=DAY)
    with pytest.raises(Conflict):
        start_task(db, user, task.id)


def test_complete_rejects_bad_duration_before_writing(db, user):
    task = create_task(db, user, TaskCreate(title="Email"), today=DAY)

    with pytest.raises(ValidationFailure):
        complete_task(db, user, task.id, actual_duration=0, today=DAY)

    db.refresh(task)
    assert task.status == "pending"
    assert user.total_points == 0


def test_complete_stores_duration(db, user):
    task = create_task(db, user, TaskCreate(title="Essay"), today=DAY)
    result = complete_task(db, user, task.id, actual_duration=45, today=DAY)
    assert result.task.actual_duration == 45
    assert result.task.completed_at is not None


def test_start_task(db, user):
    task = create_task(db, user, TaskCreate(title="Run"), today=DAY)
    started = start_task(db, user, task.id)
    assert started.status == "in_progress"
    assert started.started_at is not None


def test_update_recomputes_reward(db, user):
    task = create_task(db, user, TaskCreate(title="Garden"), today=DAY)
    updated = update_task(db, user, task.id, TaskUpdate(difficulty_level=5))
    # 10 + 4.5 + 3 + 4 = 21.5
    assert updated.reward_points == 22


def test_completed_task_reward_is_locked(db, user):
    task = create_task(db, user, TaskCreate(title="Bills"), today=DAY)
    complete_task(db, user, task.id, today=DAY)

    with pytest.raises(Conflict):
        update_task(db, user, task.id, TaskUpdate(priority=5))
    with pytest.raises(Conflict):
        update_task(db, user, task.id, TaskUpdate(status="pending"))

    renamed = update_task(db, user, task.id, TaskUpdate(title="Pay bills"))
    assert renamed.title == "Pay bills"


def test_list_tasks_order_and_filters(db, user):
    low = create_task(db, user, TaskCreate(title="Low", priority=1, category="home"), today=DAY)
    high = create_task(db, user, TaskCreate(title="High", priority=5, category="work"), today=DAY)
    doing = create_task(db, user, TaskCreate(title="Doing", priority=1, category="work"), today=DAY)
    start_task(db, user, doing.id)

    assert [t.id for t in list_tasks(db, user)] == [doing.id, high.id, low.id]
    assert [t.id for t in list_tasks(db, user, category="work")] == [doing.id, high.id]
    assert [t.id for t in list_tasks(db, user, status="pending")] == [high.id, low.id]
    assert [t.id for t in list_tasks(db, user, priority=1)] == [doing.id, low.id]


def test_delete_task_removes_subtasks(db, user):
    parent = create_task(db, user, TaskCreate(title="Trip"), today=DAY)
    create_task(db, user, TaskCreate(title="Tickets", parent_task_id=parent.id), today=DAY)

    delete_task(db, user, parent.id)

    assert db.query(Task).count() == 0


def test_task_statistics(db, user):
    for title in ("A", "B", "C", "D"):
        create_task(db, user, TaskCreate(title=title), today=DAY)
    first = db.query(Task).filter(Task.title == "A").one()
    complete_task(db, user, first.id, today=DAY)

    stats = get_task_statistics(db, user, now=clock.utcnow())

    assert stats.total == 4
    assert stats.completed == 1
    assert stats.pending == 3
    assert stats.completion_rate == 25.0
    assert stats.weekly_completion_rate == 25


def test_overlapping_completions_pay_once(two_sessions):
    """Test que una segunda petición con la tarea aún 'pending' en memoria no cobra otra vez."""
    first, second = two_sessions
    ada = first.query(User).one()
    task = create_task(first, ada, TaskCreate(title="Dishes"), today=DAY)

    late_user = second.get(User, ada.id)
    late_task = second.get(Task, task.id)
    assert late_task.status == "pending"

    complete_task(first, ada, task.id, today=DAY)
    with pytest.raises(Conflict):
        complete_task(second, late_user, task.id, today=DAY)

    payouts = first.query(RewardHistory).filter(
        RewardHistory.reason == RewardReason.task_completed.value
    ).count()
    assert payouts == 1
    first.refresh(ada)
    assert ada.total_points == 18 + 10  # tarea + logro first_task
