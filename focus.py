"""
=============================================================================
FOCUS.PY — Sesiones de Foco
=============================================================================
Una sesión se abre con una duración prevista y se cierra una sola vez con
las métricas reales (duración, distracciones, calidad 1-5, objetivo).
Cerrarla paga calculate_focus_points(), siempre al menos 1 punto.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

import clock
from achievements import evaluate_achievements, to_responses
from analytics import record_daily_activity
from errors import NotFound, Forbidden, Conflict
from gamification import award_points, calculate_focus_points, update_streak
from models import User, FocusSession, RewardReason
from schemas import (
    FocusSessionStart, FocusSessionEnd, FocusSessionResponse, FocusResult, FocusStatistics
)
from tasks import get_owned_task

logger = logging.getLogger("ardenia.focus")


def get_owned_session(db: Session, user: User, session_id: int) -> FocusSession:
    session = db.query(FocusSession).filter(FocusSession.id == session_id).first()
    if session is None:
        raise NotFound("Focus session not found")
    if session.user_id != user.id:
        raise Forbidden("Access denied")
    return session


def start_focus_session(db: Session, user: User, data: FocusSessionStart) -> FocusSession:
    if data.task_id is not None:
        get_owned_task(db, user, data.task_id)

    session = FocusSession(
        user_id=user.id,
        task_id=data.task_id,
        planned_duration=data.planned_duration,
        session_type=data.session_type,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def end_focus_session(
    db: Session,
    user: User,
    session_id: int,
    metrics: FocusSessionEnd,
    today: Optional[date] = None,
) -> FocusResult:
    """
    Cierra una sesión abierta y paga sus puntos.

    Errores: NotFound, Forbidden, Conflict (ya terminada),
    ValidationFailure (métricas fuera de rango, antes de escribir nada).
    """
    session = get_owned_session(db, user, session_id)
    if session.ended_at is not None:
        raise Conflict("Focus session already ended")

    points_earned = calculate_focus_points(
        metrics.actual_duration,
        metrics.focus_quality,
        metrics.completed_goal,
        metrics.distraction_count,
    )
    today = today or clock.today()

    # Solo la petición que encuentra ended_at a NULL cierra la sesión y cobra
    moved = db.query(FocusSession).filter(
        FocusSession.id == session.id,
        FocusSession.ended_at.is_(None)
    ).update({
        FocusSession.ended_at: clock.utcnow(),
        FocusSession.actual_duration: metrics.actual_duration,
        FocusSession.distraction_count: metrics.distraction_count or 0,
        FocusSession.focus_quality: metrics.focus_quality,
        FocusSession.completed_goal: metrics.completed_goal,
        FocusSession.points_earned: points_earned,
    }, synchronize_session=False)
    if not moved:
        db.rollback()
        raise Conflict("Focus session already ended")

    award_points(db, user, points_earned, RewardReason.focus_session, {
        "session_id": session.id,
        "duration": metrics.actual_duration,
        "quality": metrics.focus_quality,
    }, day=today)
    record_daily_activity(
        db, user.id, today,
        focus_minutes=metrics.actual_duration,
        focus_sessions=1,
        focus_quality=metrics.focus_quality,
    )
    update_streak(db, user, today)
    db.commit()

    new_achievements = evaluate_achievements(db, user)
    db.refresh(session)

    logger.info(f"🧘 {user.username} termina una sesión de {metrics.actual_duration} min (+{points_earned})")
    return FocusResult(
        session=FocusSessionResponse.model_validate(session),
        points_earned=points_earned,
        new_achievements=to_responses(new_achievements),
    )


def list_active_sessions(db: Session, user: User) -> list[FocusSession]:
    return db.query(FocusSession).filter(
        FocusSession.user_id == user.id, FocusSession.ended_at.is_(None)
    ).order_by(FocusSession.started_at.desc()).all()


def list_session_history(db: Session, user: User, limit: int = 20) -> list[FocusSession]:
    return db.query(FocusSession).filter(
        FocusSession.user_id == user.id, FocusSession.ended_at.isnot(None)
    ).order_by(FocusSession.ended_at.desc()).limit(limit).all()


def get_focus_statistics(db: Session, user: User) -> FocusStatistics:
    sessions = db.query(FocusSession).filter(
        FocusSession.user_id == user.id, FocusSession.ended_at.isnot(None)
    ).all()

    total_sessions = len(sessions)
    total_minutes = sum(s.actual_duration or 0 for s in sessions)
    rated = [s.focus_quality for s in sessions if s.focus_quality]
    avg_quality = sum(rated) / len(rated) if rated else 0
    goals_met = sum(1 for s in sessions if s.completed_goal)

    return FocusStatistics(
        total_sessions=total_sessions,
        total_minutes=total_minutes,
        total_hours=round(total_minutes / 60, 1),
        average_focus_quality=round(avg_quality, 1),
        completion_rate=round(goals_met / total_sessions * 100) if total_sessions else 0,
    )
