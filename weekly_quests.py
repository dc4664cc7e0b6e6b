"""
=============================================================================
WEEKLY_QUESTS.PY — Misiones Semanales
=============================================================================
Una misión es un compromiso de 7 días con N tareas; N sale del nivel de
agobio que elige el usuario:

  light → 5     medium → 10     full → 15

La ventana empieza en el día de reinicio del usuario (0=domingo ... 6=sábado)
y cubre 7 días completos. Estados:

  active ──→ completed   (objetivo alcanzado: bonus de XP pagado una vez)
         ├─→ failed      (se acabó la ventana sin llegar al objetivo)
         └─→ abandoned   (el usuario se rindió)

Los tres últimos son finales. `completed_task_count` es una caché: siempre
se recalcula desde las filas de tareas, nunca se incrementa a mano.

Bonus XP = floor(suma de la XP de las tareas completadas * (multiplicador - 1)),
multiplicador 1.5.
"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import clock
from achievements import evaluate_achievements, to_responses
from errors import NotFound, Forbidden, Conflict, ValidationFailure
from gamification import award_points
from models import (
    User, WeeklyQuest, WeeklyQuestTask, QuestStatus, QuestTaskSource, RewardReason
)
from schemas import QuestTaskCreate, WeeklyQuestCreate, QuestTaskResponse, QuestTaskResult
from tasks import get_owned_task

logger = logging.getLogger("ardenia.quests")


# =============================================================================
# ===================== CONSTANTES ============================================
# =============================================================================

OVERWHELM_LEVELS = {
    "light": {
        "name": "Light",
        "task_count": 5,
        "description": "A gentle start - perfect for busy weeks",
        "icon": "🌱",
    },
    "medium": {
        "name": "Medium",
        "task_count": 10,
        "description": "Balanced commitment - steady progress",
        "icon": "🌿",
    },
    "full": {
        "name": "Full",
        "task_count": 15,
        "description": "Maximum focus - crush your goals",
        "icon": "🔥",
    },
}

WEEKLY_QUEST_XP_MULTIPLIER = 1.5
DEFAULT_QUEST_TASK_XP = 10

CLOSED_STATUSES = (QuestStatus.failed.value, QuestStatus.abandoned.value)


# =============================================================================
# ===================== VENTANA SEMANAL =======================================
# =============================================================================

def week_boundaries(reset_day: int, today: Optional[date] = None) -> tuple[date, date]:
    """
    (week_start, week_end) de la ventana que contiene `today`.

    week_start = el último `reset_day` igual o anterior a hoy
    week_end   = week_start + 6 días (cuenta el día entero)
    """
    if not 0 <= reset_day <= 6:
        raise ValidationFailure("weekly_reset_day must be 0-6 (0 = Sunday)")
    today = today or clock.today()
    # date.weekday(): lunes=0 ... domingo=6  →  domingo=0 ... sábado=6
    current_day = (today.weekday() + 1) % 7
    days_since_reset = (current_day - reset_day) % 7
    week_start = today - timedelta(days=days_since_reset)
    return week_start, week_start + timedelta(days=6)


def days_remaining(quest: WeeklyQuest, today: Optional[date] = None) -> int:
    """Días que quedan en la ventana, hoy incluido"""
    today = today or clock.today()
    return max(0, (quest.week_end - today).days + 1)


def calculate_quest_bonus(total_task_xp: int, multiplier: float = WEEKLY_QUEST_XP_MULTIPLIER) -> int:
    return int(math.floor(total_task_xp * (multiplier - 1)))


# =============================================================================
# ===================== BÚSQUEDAS =============================================
# =============================================================================

def get_owned_quest(db: Session, user: User, quest_id: int) -> WeeklyQuest:
    quest = db.query(WeeklyQuest).filter(WeeklyQuest.id == quest_id).first()
    if quest is None:
        raise NotFound("Weekly quest not found")
    if quest.user_id != user.id:
        raise Forbidden("Access denied")
    return quest


def get_owned_quest_task(db: Session, user: User, quest_task_id: int) -> WeeklyQuestTask:
    quest_task = db.query(WeeklyQuestTask).filter(WeeklyQuestTask.id == quest_task_id).first()
    if quest_task is None:
        raise NotFound("Quest task not found")
    if quest_task.quest.user_id != user.id:
        raise Forbidden("Access denied")
    return quest_task


def _recount(db: Session, quest: WeeklyQuest) -> int:
    """Recalcula completed_task_count desde las filas de tareas"""
    db.flush()
    count = db.query(WeeklyQuestTask).filter(
        WeeklyQuestTask.weekly_quest_id == quest.id,
        WeeklyQuestTask.completed.is_(True)
    ).count()
    quest.completed_task_count = count
    return count


def _build_quest_task(db: Session, user: User, quest_id: Optional[int], data: QuestTaskCreate) -> WeeklyQuestTask:
    if data.task_id is not None:
        get_owned_task(db, user, data.task_id)
        source = QuestTaskSource.existing.value
    elif data.source == QuestTaskSource.existing.value:
        raise ValidationFailure("Quest tasks from an existing task need a task_id")
    else:
        source = QuestTaskSource.new.value

    return WeeklyQuestTask(
        weekly_quest_id=quest_id,
        task_id=data.task_id,
        title=data.title,
        description=data.description,
        xp=data.xp if data.xp is not None else DEFAULT_QUEST_TASK_XP,
        source=source,
    )


# =============================================================================
# ===================== CADUCIDAD =============================================
# =============================================================================

def expire_stale_quests(db: Session, user_id: int, today: Optional[date] = None) -> int:
    """
    Pasa a `failed` toda misión activa cuya ventana ya terminó.
    Idempotente: se ejecuta en cada lectura de misiones. Devuelve cuántas movió.
    """
    today = today or clock.today()
    expired = db.query(WeeklyQuest).filter(
        WeeklyQuest.user_id == user_id,
        WeeklyQuest.status == QuestStatus.active.value,
        WeeklyQuest.week_end < today
    ).update(
        {WeeklyQuest.status: QuestStatus.failed.value, WeeklyQuest.updated_at: clock.utcnow()},
        synchronize_session=False,
    )
    if expired:
        db.commit()
        db.expire_all()
        logger.info(f"⌛ {expired} misión(es) del usuario {user_id} fallidas (ventana terminada)")
    return expired


def get_current_quest(db: Session, user: User, today: Optional[date] = None) -> Optional[WeeklyQuest]:
    expire_stale_quests(db, user.id, today)
    return db.query(WeeklyQuest).filter(
        WeeklyQuest.user_id == user.id,
        WeeklyQuest.status == QuestStatus.active.value
    ).order_by(WeeklyQuest.created_at.desc(), WeeklyQuest.id.desc()).first()


def list_quest_history(db: Session, user: User, limit: int = 10,
                       today: Optional[date] = None) -> list[WeeklyQuest]:
    expire_stale_quests(db, user.id, today)
    return db.query(WeeklyQuest).filter(
        WeeklyQuest.user_id == user.id,
        WeeklyQuest.status != QuestStatus.active.value
    ).order_by(WeeklyQuest.created_at.desc(), WeeklyQuest.id.desc()).limit(limit).all()


# =============================================================================
# ===================== COMANDOS ==============================================
# =============================================================================

def create_weekly_quest(db: Session, user: User, data: WeeklyQuestCreate,
                        today: Optional[date] = None) -> WeeklyQuest:
    """
    Crea la misión de la ventana actual con sus tareas, todo o nada.
    """
    today = today or clock.today()
    if get_current_quest(db, user, today) is not None:
        raise Conflict("There is already an active weekly quest")
    if not data.tasks:
        raise ValidationFailure("A weekly quest needs at least one task")

    level = OVERWHELM_LEVELS.get(data.overwhelm_level)
    if level is None:
        raise ValidationFailure(f"Unknown overwhelm level: {data.overwhelm_level}")

    # Validar todas las tareas antes de escribir nada
    quest_tasks = [_build_quest_task(db, user, None, t) for t in data.tasks]
    week_start, week_end = week_boundaries(user.weekly_reset_day, today)

    quest = WeeklyQuest(
        user_id=user.id,
        overwhelm_level=data.overwhelm_level,
        week_start=week_start,
        week_end=week_end,
        target_task_count=level["task_count"],
        completed_task_count=0,
        xp_multiplier=WEEKLY_QUEST_XP_MULTIPLIER,
        status=QuestStatus.active.value,
    )
    try:
        db.add(quest)
        db.flush()
        for quest_task in quest_tasks:
            quest_task.weekly_quest_id = quest.id
            db.add(quest_task)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"❌ Rollback al crear la misión semanal (user {user.id})")
        raise

    db.refresh(quest)
    logger.info(f"📜 {user.username} empieza una misión {data.overwhelm_level} "
                f"({week_start} → {week_end}, {len(quest_tasks)} tareas)")
    return quest


def add_quest_task(db: Session, user: User, quest_id: int, data: QuestTaskCreate,
                   today: Optional[date] = None) -> WeeklyQuestTask:
    expire_stale_quests(db, user.id, today)
    quest = get_owned_quest(db, user, quest_id)
    if quest.status != QuestStatus.active.value:
        raise Conflict(f"Quest is {quest.status}")

    quest_task = _build_quest_task(db, user, quest.id, data)
    db.add(quest_task)
    db.commit()
    db.refresh(quest_task)
    return quest_task


def delete_quest_task(db: Session, user: User, quest_task_id: int,
                      today: Optional[date] = None):
    expire_stale_quests(db, user.id, today)
    quest_task = get_owned_quest_task(db, user, quest_task_id)
    quest = quest_task.quest
    if quest.status != QuestStatus.active.value:
        raise Conflict(f"Quest is {quest.status}")
    if len(quest.tasks) <= 1:
        raise Conflict("A weekly quest needs at least one task")

    db.delete(quest_task)
    _recount(db, quest)
    db.commit()


def _result(quest_task: WeeklyQuestTask, quest: WeeklyQuest, **extra) -> QuestTaskResult:
    return QuestTaskResult(
        quest_task=QuestTaskResponse.model_validate(quest_task),
        quest_status=quest.status,
        completed_task_count=quest.completed_task_count,
        **extra,
    )


def complete_quest_task(db: Session, user: User, quest_task_id: int,
                        now: Optional[datetime] = None) -> QuestTaskResult:
    """
    Marca una tarea de la misión, paga su XP una sola vez y completa la
    misión la primera vez que se llega al objetivo (pagando el bonus).

    Completar más tareas en una misión ya completada se permite, pero el
    bonus nunca se paga otra vez. Misión fallida/abandonada → Conflict.
    """
    now = now or clock.utcnow()
    today = clock.today(now)
    expire_stale_quests(db, user.id, today)

    quest_task = get_owned_quest_task(db, user, quest_task_id)
    quest = quest_task.quest
    if quest.status in CLOSED_STATUSES:
        raise Conflict(f"Quest is {quest.status}")
    if quest_task.completed:
        return _result(quest_task, quest)

    checked = db.query(WeeklyQuestTask).filter(
        WeeklyQuestTask.id == quest_task.id,
        WeeklyQuestTask.completed.is_(False)
    ).update({
        WeeklyQuestTask.completed: True,
        WeeklyQuestTask.completed_at: now,
    }, synchronize_session=False)
    if not checked:
        # Otra petición la marcó antes: misma respuesta, sin cobrar nada
        db.rollback()
        return _result(quest_task, quest)

    # xp_awarded sobrevive a desmarcar: la XP de cada tarea se paga una vez
    paid = db.query(WeeklyQuestTask).filter(
        WeeklyQuestTask.id == quest_task.id,
        WeeklyQuestTask.xp_awarded.is_(False)
    ).update({WeeklyQuestTask.xp_awarded: True}, synchronize_session=False)
    if paid:
        award_points(db, user, quest_task.xp, RewardReason.quest_task_completed, {
            "quest_id": quest.id, "quest_task_id": quest_task.id, "title": quest_task.title,
        }, day=today)

    count = _recount(db, quest)
    quest_completed = False
    bonus_xp = None

    if quest.status == QuestStatus.active.value and count >= quest.target_task_count:
        total_xp = db.query(func.coalesce(func.sum(WeeklyQuestTask.xp), 0)).filter(
            WeeklyQuestTask.weekly_quest_id == quest.id,
            WeeklyQuestTask.completed.is_(True)
        ).scalar()
        bonus = calculate_quest_bonus(total_xp, quest.xp_multiplier)

        # UPDATE condicional: solo una petición puede pasar active → completed
        moved = db.query(WeeklyQuest).filter(
            WeeklyQuest.id == quest.id,
            WeeklyQuest.status == QuestStatus.active.value
        ).update({
            WeeklyQuest.status: QuestStatus.completed.value,
            WeeklyQuest.bonus_xp_earned: bonus,
            WeeklyQuest.completed_at: now,
            WeeklyQuest.completed_task_count: count,
        }, synchronize_session=False)

        if moved:
            award_points(db, user, bonus, RewardReason.weekly_quest_bonus, {
                "quest_id": quest.id, "overwhelm_level": quest.overwhelm_level,
                "task_xp": total_xp,
            }, day=today)
            quest_completed = True
            bonus_xp = bonus

    db.commit()
    db.refresh(quest)
    db.refresh(quest_task)

    new_achievements = evaluate_achievements(db, user) if quest_completed else []
    if quest_completed:
        logger.info(f"🎉 {user.username} completa la misión semanal {quest.id} (+{bonus_xp} XP de bonus)")

    return _result(
        quest_task, quest,
        quest_completed=quest_completed,
        bonus_xp=bonus_xp,
        new_achievements=to_responses(new_achievements),
    )


def uncomplete_quest_task(db: Session, user: User, quest_task_id: int,
                          today: Optional[date] = None) -> QuestTaskResult:
    """
    Desmarca una tarea de una misión ACTIVA. Cuando la misión es final (y
    quizá ya pagó el bonus) se bloquea con un Conflict.
    """
    expire_stale_quests(db, user.id, today)
    quest_task = get_owned_quest_task(db, user, quest_task_id)
    quest = quest_task.quest
    if quest.status != QuestStatus.active.value:
        raise Conflict(f"Quest is {quest.status}")

    if quest_task.completed:
        quest_task.completed = False
        quest_task.completed_at = None
        _recount(db, quest)
        db.commit()
        db.refresh(quest_task)
    return _result(quest_task, quest)


def abandon_quest(db: Session, user: User, quest_id: int,
                  today: Optional[date] = None) -> WeeklyQuest:
    expire_stale_quests(db, user.id, today)
    quest = get_owned_quest(db, user, quest_id)
    if quest.status != QuestStatus.active.value:
        raise Conflict(f"Quest is {quest.status}")

    quest.status = QuestStatus.abandoned.value
    db.commit()
    db.refresh(quest)
    logger.info(f"🏳️ {user.username} abandona la misión semanal {quest.id}")
    return quest
