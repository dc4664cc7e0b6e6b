"""
=============================================================================
ANALYTICS.PY — Progreso Diario e Informes
=============================================================================
DailyProgress guarda una fila por usuario y día. Cada tarea, sesión de foco
y premio de puntos suma a la fila de hoy con record_daily_activity().

Informes construidos encima:
  - dashboard        → nivel, hoy, conteo de tareas, logros recientes
  - historial        → los últimos N días, del más viejo al más nuevo
  - informe semanal  → totales de 7 días y medias diarias
  - insights         → patrones + recomendaciones en lenguaje llano
"""

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

import clock
from levels import get_level_info
from models import (
    User, Task, TaskStatus, FocusSession, DailyProgress, UserAchievement
)
from schemas import AchievementResponse, DailyProgressResponse

logger = logging.getLogger("ardenia.analytics")


# =============================================================================
# ===================== PROGRESO DIARIO =======================================
# =============================================================================

def record_daily_activity(
    db: Session,
    user_id: int,
    day: Optional[date] = None,
    tasks_created: int = 0,
    tasks_completed: int = 0,
    focus_minutes: int = 0,
    focus_sessions: int = 0,
    focus_quality: Optional[int] = None,
    points_earned: int = 0,
) -> DailyProgress:
    """
    Crea la fila (usuario, día) si no existe y le suma los contadores.

    Llamarla sin contadores solo asegura que la fila existe, así que se
    puede llamar las veces que haga falta. No hace commit.

    Las sumas van en un único UPDATE (col = col + N), igual que los puntos
    del usuario en award_points().
    """
    day = day or clock.today()
    _ensure_daily_row(db, user_id, day)

    values = {}
    for column, amount in (
        (DailyProgress.tasks_created, tasks_created),
        (DailyProgress.tasks_completed, tasks_completed),
        (DailyProgress.focus_minutes, focus_minutes),
        (DailyProgress.focus_sessions, focus_sessions),
        (DailyProgress.points_earned, points_earned),
    ):
        if amount:
            values[column] = column + amount

    if focus_quality is not None:
        # En un UPDATE, el lado derecho siempre ve los valores ANTERIORES
        rated = DailyProgress.rated_focus_sessions
        previous_avg = func.coalesce(DailyProgress.average_focus_quality, 0.0)
        values[DailyProgress.average_focus_quality] = (previous_avg * rated + focus_quality) / (rated + 1)
        values[rated] = rated + 1

    query = db.query(DailyProgress).filter(
        DailyProgress.user_id == user_id,
        DailyProgress.date == day
    )
    if values:
        query.update(values, synchronize_session=False)
    return query.populate_existing().one()


def _ensure_daily_row(db: Session, user_id: int, day: date):
    """INSERT ... ON CONFLICT DO NOTHING: dos peticiones a la vez no chocan"""
    if db.get_bind().dialect.name == "postgresql":
        insert = postgresql_insert
    else:
        insert = sqlite_insert

    db.execute(
        insert(DailyProgress).values(
            user_id=user_id, date=day,
            tasks_created=0, tasks_completed=0, focus_minutes=0,
            focus_sessions=0, rated_focus_sessions=0, points_earned=0,
        ).on_conflict_do_nothing(index_elements=["user_id", "date"])
    )


def get_progress_history(db: Session, user: User, days: int = 30,
                         today: Optional[date] = None) -> list[DailyProgress]:
    # `days` días naturales, hoy incluido
    start = clock.days_ago(days - 1, today)
    return db.query(DailyProgress).filter(
        DailyProgress.user_id == user.id,
        DailyProgress.date >= start
    ).order_by(DailyProgress.date.asc()).all()


# =============================================================================
# ===================== DASHBOARD =============================================
# =============================================================================

def get_dashboard(db: Session, user: User, today: Optional[date] = None) -> dict:
    today = today or clock.today()
    level_info = get_level_info(user.total_points)

    today_progress = db.query(DailyProgress).filter(
        DailyProgress.user_id == user.id, DailyProgress.date == today
    ).first()

    tasks = db.query(Task).filter(Task.user_id == user.id)
    total = tasks.count()
    counts = {
        status.value: tasks.filter(Task.status == status.value).count()
        for status in (TaskStatus.pending, TaskStatus.in_progress, TaskStatus.completed)
    }

    recent = db.query(UserAchievement).filter(
        UserAchievement.user_id == user.id
    ).order_by(UserAchievement.unlocked_at.desc()).limit(5).all()

    return {
        "user": {
            "username": user.username,
            "total_points": user.total_points,
            "level": user.level,
            "tier": level_info.tier.model_dump(),
            "current_streak": user.current_streak,
            "longest_streak": user.longest_streak,
            "points_to_next_level": level_info.points_to_next_level,
            "level_progress": level_info.progress,
        },
        "today": {
            "tasks_completed": today_progress.tasks_completed if today_progress else 0,
            "focus_minutes": today_progress.focus_minutes if today_progress else 0,
            "points_earned": today_progress.points_earned if today_progress else 0,
        },
        "tasks": {
            "total": total,
            "completed": counts["completed"],
            "pending": counts["pending"],
            "in_progress": counts["in_progress"],
            "completion_rate": round(counts["completed"] / total * 100) if total else 0,
        },
        "recent_achievements": [
            AchievementResponse.model_validate(ua.achievement).model_copy(
                update={"unlocked": True, "unlocked_at": ua.unlocked_at}
            ).model_dump()
            for ua in recent
        ],
    }


# =============================================================================
# ===================== INFORMES ==============================================
# =============================================================================

def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def get_weekly_report(db: Session, user: User, today: Optional[date] = None) -> dict:
    progress = get_progress_history(db, user, days=7, today=today)

    tasks_completed = sum(p.tasks_completed for p in progress)
    focus_minutes = sum(p.focus_minutes for p in progress)
    points = sum(p.points_earned for p in progress)
    qualities = [p.average_focus_quality for p in progress if p.average_focus_quality]

    return {
        "period": "7 days",
        "tasks_completed": tasks_completed,
        "focus_minutes": focus_minutes,
        "focus_hours": round(focus_minutes / 60, 1),
        "points_earned": points,
        "average_focus_quality": round(_average(qualities), 1),
        "daily_average": {
            "tasks": round(tasks_completed / 7, 1),
            "focus_minutes": round(focus_minutes / 7, 1),
            "points": round(points / 7, 1),
        },
        "days": [DailyProgressResponse.model_validate(p).model_dump() for p in progress],
    }


def get_insights(db: Session, user: User, today: Optional[date] = None) -> dict:
    progress = get_progress_history(db, user, days=30, today=today)
    avg_tasks = _average([p.tasks_completed for p in progress])
    best_day = max(progress, key=lambda p: p.tasks_completed, default=None)
    if best_day is not None and best_day.tasks_completed == 0:
        best_day = None

    sessions = db.query(FocusSession).filter(
        FocusSession.user_id == user.id,
        FocusSession.ended_at.isnot(None)
    ).order_by(FocusSession.ended_at.desc()).limit(30).all()

    avg_length = _average([s.actual_duration or 0 for s in sessions])
    avg_distractions = _average([s.distraction_count for s in sessions])

    return {
        "productivity": {
            "average_tasks_per_day": round(avg_tasks, 1),
            "best_day_tasks": best_day.tasks_completed if best_day else 0,
            "best_date": best_day.date.isoformat() if best_day else None,
        },
        "focus": {
            "average_session_length": round(avg_length),
            "average_distractions": round(avg_distractions, 1),
            "total_sessions": len(sessions),
        },
        "recommendations": build_recommendations(avg_tasks, avg_length, avg_distractions),
    }


def build_recommendations(avg_tasks: float, avg_session_length: float,
                          avg_distractions: float) -> list[str]:
    recommendations = []

    if avg_tasks < 3:
        recommendations.append(
            "Try breaking down large tasks into smaller, more manageable subtasks")
    if avg_session_length < 20:
        recommendations.append(
            "Consider gradually increasing your focus session length to build endurance")
    if avg_session_length > 60:
        recommendations.append(
            "Take regular breaks! Rest is crucial for sustained focus")
    if avg_distractions > 3:
        recommendations.append(
            "Try using focus mode or find a quieter environment to minimize distractions")

    if not recommendations:
        recommendations.append("You're doing great! Keep up the consistency")
    return recommendations
