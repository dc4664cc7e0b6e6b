"""
=============================================================================
TASKS.PY — Ciclo de Vida de las Tareas
=============================================================================
pending → in_progress → completed   (o archived en cualquier momento antes)

Completar una tarea es la acción principal que da puntos:
  1. bonus = 25% de los puntos base si el usuario tiene racha
  2. se abona base + bonus (incremento atómico + RewardHistory)
  3. DailyProgress.tasks_completed += 1
  4. se actualiza la racha
  5. commit, y después se evalúan los logros
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

import clock
from achievements import evaluate_achievements, to_responses
from analytics import record_daily_activity
from errors import NotFound, Forbidden, Conflict, ValidationFailure
from gamification import (
    award_points, calculate_task_points, calculate_completion_bonus, update_streak
)
from models import User, Task, TaskStatus, RewardReason
from schemas import (
    TaskCreate, TaskUpdate, TaskResponse, TaskCompletion, TaskStatistics
)

logger = logging.getLogger("ardenia.tasks")

REWARD_FIELDS = ("difficulty_level", "energy_required", "estimated_duration", "priority")
OPEN_STATUSES = (TaskStatus.pending.value, TaskStatus.in_progress.value)


def get_owned_task(db: Session, user: User, task_id: int) -> Task:
    """La tarea, si existe Y es del usuario"""
    task = db.query(Task).filter(Task.id == task_id).first()
    if task is None:
        raise NotFound("Task not found")
    if task.user_id != user.id:
        raise Forbidden("Access denied")
    return task


def create_task(db: Session, user: User, data: TaskCreate, today: Optional[date] = None) -> Task:
    if data.parent_task_id is not None:
        parent = get_owned_task(db, user, data.parent_task_id)
        if parent.parent_task_id is not None:
            raise ValidationFailure("Subtasks cannot have subtasks of their own")

    reward_points = calculate_task_points(
        data.difficulty_level, data.energy_required, data.estimated_duration, data.priority
    )

    task = Task(
        user_id=user.id,
        parent_task_id=data.parent_task_id,
        title=data.title,
        description=data.description,
        category=data.category,
        tags=data.tags,
        priority=data.priority or 2,
        energy_required=data.energy_required or 3,
        difficulty_level=data.difficulty_level or 3,
        estimated_duration=data.estimated_duration,
        due_date=data.due_date,
        reward_points=reward_points,
        bonus_points=0,
    )
    db.add(task)
    record_daily_activity(db, user.id, today or clock.today(), tasks_created=1)
    db.commit()
    db.refresh(task)

    logger.info(f"➕ Tarea creada: {task.title} ({reward_points} pts, user: {user.username})")
    return task


def list_tasks(
    db: Session,
    user: User,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[int] = None,
) -> list[Task]:
    """Tareas de primer nivel (las subtareas van anidadas), primero las que están en curso"""
    query = db.query(Task).filter(Task.user_id == user.id, Task.parent_task_id.is_(None))

    if status:
        query = query.filter(Task.status == status)
    if category:
        query = query.filter(Task.category == category)
    if priority:
        query = query.filter(Task.priority == priority)

    status_order = case(
        (Task.status == TaskStatus.in_progress.value, 0),
        (Task.status == TaskStatus.pending.value, 1),
        (Task.status == TaskStatus.completed.value, 2),
        else_=3,
    )
    return query.order_by(
        status_order,
        Task.priority.desc(),
        Task.due_date.asc().nullslast(),
        Task.created_at.desc(),
    ).all()


def update_task(db: Session, user: User, task_id: int, data: TaskUpdate) -> Task:
    task = get_owned_task(db, user, task_id)
    update_data = data.model_dump(exclude_unset=True)

    if task.status == TaskStatus.completed.value:
        locked = set(update_data) & (set(REWARD_FIELDS) | {"status"})
        if locked:
            raise Conflict("Completed tasks cannot change their status or reward attributes")

    for key, value in update_data.items():
        setattr(task, key, value)

    if set(update_data) & set(REWARD_FIELDS):
        task.reward_points = calculate_task_points(
            task.difficulty_level, task.energy_required, task.estimated_duration, task.priority
        )

    db.commit()
    db.refresh(task)
    return task


def start_task(db: Session, user: User, task_id: int) -> Task:
    task = get_owned_task(db, user, task_id)
    if task.status in (TaskStatus.completed.value, TaskStatus.archived.value):
        raise Conflict(f"Cannot start a task that is {task.status}")
    if task.status == TaskStatus.pending.value:
        task.status = TaskStatus.in_progress.value
        task.started_at = clock.utcnow()
        db.commit()
        db.refresh(task)
    return task


def complete_task(
    db: Session,
    user: User,
    task_id: int,
    actual_duration: Optional[int] = None,
    today: Optional[date] = None,
) -> TaskCompletion:
    """
    Completa una tarea pendiente / en curso y paga su recompensa.

    Errores: NotFound, Forbidden, Conflict (ya completada o archivada),
    ValidationFailure (actual_duration < 1).
    """
    task = get_owned_task(db, user, task_id)
    if task.status == TaskStatus.completed.value:
        raise Conflict("Task already completed")
    if task.status == TaskStatus.archived.value:
        raise Conflict("Archived tasks cannot be completed")
    if actual_duration is not None and actual_duration < 1:
        raise ValidationFailure("actual_duration must be >= 1")

    today = today or clock.today()

    # La racha que cuenta es la de ANTES de esta tarea
    bonus_points = calculate_completion_bonus(task.reward_points, user.current_streak)
    points_earned = task.reward_points + bonus_points

    # UPDATE condicional: de dos peticiones simultáneas solo una mueve la fila
    values = {
        Task.status: TaskStatus.completed.value,
        Task.completed_at: clock.utcnow(),
        Task.bonus_points: bonus_points,
    }
    if actual_duration is not None:
        values[Task.actual_duration] = actual_duration

    moved = db.query(Task).filter(
        Task.id == task.id,
        Task.status.in_(OPEN_STATUSES)
    ).update(values, synchronize_session=False)
    if not moved:
        db.rollback()
        raise Conflict("Task already completed")

    award = award_points(db, user, points_earned, RewardReason.task_completed, {
        "task_id": task.id,
        "task_title": task.title,
        "base_points": task.reward_points,
        "bonus_points": bonus_points,
    }, day=today)
    record_daily_activity(db, user.id, today, tasks_completed=1)
    streak = update_streak(db, user, today)
    db.commit()

    new_achievements = evaluate_achievements(db, user)
    db.refresh(task)

    logger.info(f"✅ {user.username} completa '{task.title}' (+{points_earned})")
    return TaskCompletion(
        task=TaskResponse.model_validate(task),
        points_earned=points_earned,
        bonus_points=bonus_points,
        new_level=award.new_level,
        new_total_points=award.new_total_points,
        leveled_up=award.leveled_up,
        streak=streak,
        new_achievements=to_responses(new_achievements),
    )


def delete_task(db: Session, user: User, task_id: int):
    task = get_owned_task(db, user, task_id)
    db.delete(task)
    db.commit()


def get_task_statistics(db: Session, user: User, now: Optional[datetime] = None) -> TaskStatistics:
    now = now or clock.utcnow()
    tasks = db.query(Task).filter(Task.user_id == user.id)

    total = tasks.count()
    pending = tasks.filter(Task.status == TaskStatus.pending.value).count()
    in_progress = tasks.filter(Task.status == TaskStatus.in_progress.value).count()
    completed = tasks.filter(Task.status == TaskStatus.completed.value).count()

    week_ago = now - timedelta(days=7)
    recent_completed = tasks.filter(
        Task.status == TaskStatus.completed.value, Task.completed_at >= week_ago
    ).count()
    recent_total = tasks.filter(Task.created_at >= week_ago).count()

    return TaskStatistics(
        total=total,
        pending=pending,
        in_progress=in_progress,
        completed=completed,
        completion_rate=round(completed / total * 100, 1) if total else 0.0,
        weekly_completion_rate=round(recent_completed / recent_total * 100) if recent_total else 0,
    )
