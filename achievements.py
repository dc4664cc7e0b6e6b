"""
=============================================================================
ACHIEVEMENTS.PY — Catálogo de Logros y Evaluador
=============================================================================
Cada logro tiene una `key` estable ("first_task", "streak_7"...) y un
requisito numérico sobre UNA estadística del usuario. El evaluador:

  1. saca una foto UserStats
  2. recorre el catálogo, saltándose lo que el usuario ya tiene
  3. concede todo lo que cumple su umbral

Una fila del catálogo cuya key no tiene condición aquí se ignora, así se
pueden añadir filas a la tabla antes de que el código las conozca.

Conceder es idempotente: el par (usuario, logro) es único en la BD, y
perder esa carrera cuenta como "ya lo tenía".
"""

import json
import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gamification import award_points
from models import (
    User, Task, TaskStatus, FocusSession, Friendship, FriendshipStatus,
    WeeklyQuest, QuestStatus, OverwhelmLevel, Achievement, UserAchievement,
    RewardReason
)
from schemas import UserStats, AchievementResponse

logger = logging.getLogger("ardenia.achievements")


# =============================================================================
# ===================== CATÁLOGO ==============================================
# =============================================================================
# stat → atributo de UserStats que se compara con `threshold`

ACHIEVEMENT_DEFINITIONS = [
    # ── Tareas completadas ──
    {"key": "first_task", "name": "First Victory", "description": "Complete your first task",
     "icon": "🎯", "category": "completion", "tier": "bronze", "points": 10,
     "stat": "tasks_completed", "threshold": 1},
    {"key": "tasks_5", "name": "Getting Started", "description": "Complete 5 tasks",
     "icon": "🚀", "category": "completion", "tier": "bronze", "points": 25,
     "stat": "tasks_completed", "threshold": 5},
    {"key": "tasks_10", "name": "Task Master", "description": "Complete 10 tasks",
     "icon": "✅", "category": "completion", "tier": "bronze", "points": 50,
     "stat": "tasks_completed", "threshold": 10},
    {"key": "tasks_25", "name": "Productivity Pro", "description": "Complete 25 tasks",
     "icon": "💪", "category": "completion", "tier": "silver", "points": 100,
     "stat": "tasks_completed", "threshold": 25},
    {"key": "tasks_50", "name": "Task Legend", "description": "Complete 50 tasks",
     "icon": "🏆", "category": "completion", "tier": "gold", "points": 200,
     "stat": "tasks_completed", "threshold": 50},
    {"key": "tasks_100", "name": "Century Club", "description": "Complete 100 tasks",
     "icon": "💯", "category": "completion", "tier": "platinum", "points": 500,
     "stat": "tasks_completed", "threshold": 100},

    # ── XP ──
    {"key": "xp_100", "name": "XP Beginner", "description": "Earn 100 XP",
     "icon": "⭐", "category": "xp", "tier": "bronze", "points": 10,
     "stat": "total_xp", "threshold": 100},
    {"key": "xp_500", "name": "XP Collector", "description": "Earn 500 XP",
     "icon": "🌟", "category": "xp", "tier": "silver", "points": 25,
     "stat": "total_xp", "threshold": 500},
    {"key": "xp_1000", "name": "XP Hunter", "description": "Earn 1,000 XP",
     "icon": "💫", "category": "xp", "tier": "gold", "points": 50,
     "stat": "total_xp", "threshold": 1000},
    {"key": "xp_5000", "name": "XP Master", "description": "Earn 5,000 XP",
     "icon": "✨", "category": "xp", "tier": "platinum", "points": 100,
     "stat": "total_xp", "threshold": 5000},

    # ── Rachas ──
    {"key": "streak_3", "name": "On Fire", "description": "Maintain a 3-day streak",
     "icon": "🔥", "category": "streak", "tier": "bronze", "points": 15,
     "stat": "streak", "threshold": 3},
    {"key": "streak_7", "name": "Week Warrior", "description": "Maintain a 7-day streak",
     "icon": "📅", "category": "streak", "tier": "silver", "points": 50,
     "stat": "streak", "threshold": 7},
    {"key": "streak_14", "name": "Streak Master", "description": "Maintain a 14-day streak",
     "icon": "⚡", "category": "streak", "tier": "gold", "points": 100,
     "stat": "streak", "threshold": 14},
    {"key": "streak_30", "name": "Monthly Champion", "description": "Maintain a 30-day streak",
     "icon": "👑", "category": "streak", "tier": "platinum", "points": 250,
     "stat": "streak", "threshold": 30},

    # ── Niveles ──
    {"key": "level_5", "name": "Rising Star", "description": "Reach level 5",
     "icon": "⬆️", "category": "progression", "tier": "bronze", "points": 50,
     "stat": "level", "threshold": 5},
    {"key": "level_10", "name": "Seasoned", "description": "Reach level 10",
     "icon": "🎖️", "category": "progression", "tier": "silver", "points": 100,
     "stat": "level", "threshold": 10},
    {"key": "level_25", "name": "Veteran", "description": "Reach level 25",
     "icon": "🏅", "category": "progression", "tier": "gold", "points": 250,
     "stat": "level", "threshold": 25},

    # ── Foco ──
    {"key": "focus_first", "name": "First Focus", "description": "Complete your first focus session",
     "icon": "🧘", "category": "focus", "tier": "bronze", "points": 10,
     "stat": "focus_sessions", "threshold": 1},
    {"key": "focus_10", "name": "Focus Apprentice", "description": "Complete 10 focus sessions",
     "icon": "🎧", "category": "focus", "tier": "bronze", "points": 50,
     "stat": "focus_sessions", "threshold": 10},
    {"key": "focus_50", "name": "Concentration Master", "description": "Complete 50 focus sessions",
     "icon": "🧠", "category": "focus", "tier": "silver", "points": 200,
     "stat": "focus_sessions", "threshold": 50},

    # ── Social ──
    {"key": "friends_1", "name": "Social Butterfly", "description": "Add your first friend",
     "icon": "🦋", "category": "social", "tier": "bronze", "points": 10,
     "stat": "friends_count", "threshold": 1},
    {"key": "friends_5", "name": "Popular", "description": "Have 5 friends",
     "icon": "🤝", "category": "social", "tier": "silver", "points": 25,
     "stat": "friends_count", "threshold": 5},
    {"key": "friends_10", "name": "Influencer", "description": "Have 10 friends",
     "icon": "🌐", "category": "social", "tier": "gold", "points": 50,
     "stat": "friends_count", "threshold": 10},

    # ── Misiones semanales ──
    {"key": "quest_first", "name": "Quest Beginner", "description": "Complete your first Weekly Quest",
     "icon": "📜", "category": "quest", "tier": "bronze", "points": 50,
     "stat": "weekly_quests_completed", "threshold": 1},
    {"key": "quest_5", "name": "Quest Veteran", "description": "Complete 5 Weekly Quests",
     "icon": "⚔️", "category": "quest", "tier": "silver", "points": 100,
     "stat": "weekly_quests_completed", "threshold": 5},
    {"key": "quest_10", "name": "Quest Master", "description": "Complete 10 Weekly Quests",
     "icon": "🗡️", "category": "quest", "tier": "gold", "points": 250,
     "stat": "weekly_quests_completed", "threshold": 10},
    {"key": "quest_full", "name": "Full Throttle", "description": "Complete a Full difficulty Weekly Quest",
     "icon": "🏋️", "category": "quest", "tier": "silver", "points": 75,
     "stat": "full_quests_completed", "threshold": 1},
    {"key": "quest_streak_4", "name": "Consistency King", "description": "Complete 4 Weekly Quests in a row",
     "icon": "🤴", "category": "quest", "tier": "gold", "points": 200,
     "stat": "consecutive_quests_completed", "threshold": 4},
]

# key → (estadística, umbral)
ACHIEVEMENT_CONDITIONS = {
    d["key"]: (d["stat"], d["threshold"]) for d in ACHIEVEMENT_DEFINITIONS
}


def seed_achievements(db: Session):
    """
    Inserta (o actualiza) las filas del catálogo por key.
    Se ejecuta al arrancar; se puede ejecutar las veces que haga falta.
    """
    existing = {a.key: a for a in db.query(Achievement).all()}
    for d in ACHIEVEMENT_DEFINITIONS:
        values = {
            "name": d["name"],
            "description": d["description"],
            "icon": d["icon"],
            "category": d["category"],
            "tier": d["tier"],
            "point_value": d["points"],
            "requirement": json.dumps({d["stat"]: d["threshold"]}),
        }
        row = existing.get(d["key"])
        if row is None:
            db.add(Achievement(key=d["key"], **values))
        else:
            for field, value in values.items():
                setattr(row, field, value)
    db.commit()
    logger.info(f"✅ {len(ACHIEVEMENT_DEFINITIONS)} logros verificados en BD")


# =============================================================================
# ===================== ESTADÍSTICAS DEL USUARIO ===============================
# =============================================================================

def count_friends(db: Session, user_id: int) -> int:
    return db.query(Friendship).filter(
        Friendship.status == FriendshipStatus.accepted.value,
        or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id)
    ).count()


def count_consecutive_quests(quests: list[WeeklyQuest]) -> int:
    """
    Misiones completadas seguidas, de la más nueva a la más vieja. Las
    activas siguen abiertas y no cortan la serie; una fallida o abandonada sí.
    """
    run = 0
    for quest in quests:
        if quest.status == QuestStatus.active.value:
            continue
        if quest.status != QuestStatus.completed.value:
            break
        run += 1
    return run


def collect_user_stats(db: Session, user: User) -> UserStats:
    tasks_completed = db.query(Task).filter(
        Task.user_id == user.id, Task.status == TaskStatus.completed.value
    ).count()

    focus_sessions = db.query(FocusSession).filter(
        FocusSession.user_id == user.id, FocusSession.ended_at.isnot(None)
    ).count()

    quests = db.query(WeeklyQuest).filter(
        WeeklyQuest.user_id == user.id
    ).order_by(WeeklyQuest.week_start.desc(), WeeklyQuest.id.desc()).all()
    completed = [q for q in quests if q.status == QuestStatus.completed.value]

    return UserStats(
        user_id=user.id,
        tasks_completed=tasks_completed,
        total_xp=user.total_points,
        level=user.level,
        streak=user.current_streak,
        friends_count=count_friends(db, user.id),
        focus_sessions=focus_sessions,
        weekly_quests_completed=len(completed),
        full_quests_completed=sum(
            1 for q in completed if q.overwhelm_level == OverwhelmLevel.full.value
        ),
        consecutive_quests_completed=count_consecutive_quests(quests),
    )


# =============================================================================
# ===================== EVALUADOR =============================================
# =============================================================================

def _earned_achievement_ids(db: Session, user_id: int) -> set[int]:
    return {
        row.achievement_id for row in
        db.query(UserAchievement.achievement_id).filter(UserAchievement.user_id == user_id)
    }


def _unlock(db: Session, user: User, achievement: Achievement) -> bool:
    """
    Inserta la fila UserAchievement y abona sus puntos.
    Devuelve False si la fila ya existía (otra petición lo concedió antes).
    """
    db.add(UserAchievement(user_id=user.id, achievement_id=achievement.id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug(f"Logro {achievement.key} ya concedido al usuario {user.id}")
        return False

    if achievement.point_value > 0:
        award_points(db, user, achievement.point_value, RewardReason.achievement_unlocked,
                     {"achievement_key": achievement.key})
        db.commit()

    logger.info(f"🏆 {user.username} desbloquea: {achievement.name}")
    return True


def evaluate_achievements(db: Session, user: User,
                          stats: Optional[UserStats] = None) -> list[Achievement]:
    """
    Concede cada logro pendiente cuyo umbral cumplen las estadísticas.

    Devuelve solo los logros concedidos en ESTA llamada. Hace commit de cada
    uno por separado, así que se llama después del commit de la acción.
    """
    if stats is None:
        stats = collect_user_stats(db, user)

    earned = _earned_achievement_ids(db, user.id)
    newly_unlocked = []

    for achievement in db.query(Achievement).order_by(Achievement.id).all():
        if achievement.id in earned:
            continue
        condition = ACHIEVEMENT_CONDITIONS.get(achievement.key)
        if condition is None:
            continue
        stat, threshold = condition
        if getattr(stats, stat) < threshold:
            continue
        if _unlock(db, user, achievement):
            newly_unlocked.append(achievement)

    return newly_unlocked


# =============================================================================
# ===================== LECTURA ===============================================
# =============================================================================

def list_achievements(db: Session, user: User, unlocked_only: bool = False) -> list[AchievementResponse]:
    """Catálogo completo con el estado de cada logro (o solo los desbloqueados)"""
    unlocked = {
        ua.achievement_id: ua.unlocked_at for ua in
        db.query(UserAchievement).filter(UserAchievement.user_id == user.id)
    }
    result = []
    for achievement in db.query(Achievement).order_by(Achievement.category, Achievement.id):
        if unlocked_only and achievement.id not in unlocked:
            continue
        result.append(AchievementResponse.model_validate(achievement).model_copy(update={
            "unlocked": achievement.id in unlocked,
            "unlocked_at": unlocked.get(achievement.id),
        }))
    return result


def to_responses(achievements: list[Achievement]) -> list[AchievementResponse]:
    return [
        AchievementResponse.model_validate(a).model_copy(update={"unlocked": True})
        for a in achievements
    ]
