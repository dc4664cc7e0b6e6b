"""
=============================================================================
GAMIFICATION.PY — Puntos, Recompensas y Rachas
=============================================================================
Gestiona:
  - Calculadora de recompensas (puntos por tarea / por sesión de foco)
  - Dar puntos (incremento atómico + historial + progreso diario)
  - Rachas (con un día de gracia)

Filosofía:
  Constancia, no perfección. Toda sesión de foco terminada vale al menos
  un punto, y saltarse un solo día no rompe la racha.

El redondeo es siempre half-up (30.5 → 31), nunca el "del banquero".
"""

import json
import logging
import math
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

import clock
from analytics import record_daily_activity
from errors import ValidationFailure
from levels import level_for_points
from models import User, RewardHistory, StreakHistory, RewardReason
from schemas import AwardResult, StreakUpdate

logger = logging.getLogger("ardenia.gamification")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _check_range(name: str, value: Optional[int], low: int, high: Optional[int] = None):
    """Rechaza valores fuera de rango antes de escribir nada"""
    if value is None:
        return
    if value < low or (high is not None and value > high):
        bounds = f"{low}-{high}" if high is not None else f">= {low}"
        raise ValidationFailure(f"{name} must be {bounds} (got {value})")


# =============================================================================
# ===================== CALCULADORA DE RECOMPENSAS ============================
# =============================================================================

# Valores por defecto cuando la tarea no los indica
DEFAULT_DIFFICULTY = 3
DEFAULT_ENERGY = 3
DEFAULT_DURATION = 25      # minutos
DEFAULT_PRIORITY = 2

STREAK_BONUS_RATE = 0.25   # +25% al completar mientras haya racha

# Sesiones de foco
FOCUS_MINUTES_PER_POINT = 5
FOCUS_NEUTRAL_QUALITY = 3  # calidad 3 en escala 1-5 = x1
FOCUS_GOAL_BONUS = 10
FOCUS_PENALTY_PER_DISTRACTION = 2


def calculate_task_points(
    difficulty: Optional[int] = None,
    energy_required: Optional[int] = None,
    estimated_duration: Optional[int] = None,
    priority: Optional[int] = None,
) -> int:
    """
    Puntos base de una tarea, fijados al crearla.

      difficulty * 2          →  2-10
      energy_required * 1.5   →  1.5-7.5
      ceil(duration / 10)     →  1 punto por cada 10 minutos empezados
      priority * 2            →  2-10

    Ejemplo: dificultad 5, energía 5, 30 min, prioridad 5 → round(30.5) = 31
    """
    _check_range("difficulty_level", difficulty, 1, 5)
    _check_range("energy_required", energy_required, 1, 5)
    _check_range("priority", priority, 1, 5)
    _check_range("estimated_duration", estimated_duration, 1)

    difficulty = difficulty or DEFAULT_DIFFICULTY
    energy_required = energy_required or DEFAULT_ENERGY
    estimated_duration = estimated_duration or DEFAULT_DURATION
    priority = priority or DEFAULT_PRIORITY

    raw = (
        difficulty * 2
        + energy_required * 1.5
        + math.ceil(estimated_duration / 10)
        + priority * 2
    )
    return max(round_half_up(raw), 1)


def calculate_completion_bonus(base_points: int, current_streak: int) -> int:
    """25% de los puntos base, solo si el usuario tiene una racha en marcha"""
    if current_streak <= 0:
        return 0
    return round_half_up(base_points * STREAK_BONUS_RATE)


def calculate_focus_points(
    actual_duration: int,
    focus_quality: Optional[int] = None,
    completed_goal: bool = False,
    distraction_count: int = 0,
) -> int:
    """
    Puntos por una sesión de foco terminada.

      base     = round(actual_duration / 5)
      quality  = focus_quality or 3 (3 es neutro)
      bonus    = 10 si se cumplió el objetivo de la sesión
      penalty  = min(distractions * 2, base * 0.5)

      points   = max(round(base * quality / 3 + bonus - penalty), 1)

    Ejemplo: 50 min, calidad 5, objetivo cumplido, 1 distracción → 25
    """
    _check_range("actual_duration", actual_duration, 1)
    _check_range("focus_quality", focus_quality, 1, 5)
    _check_range("distraction_count", distraction_count, 0)

    base_points = round_half_up(actual_duration / FOCUS_MINUTES_PER_POINT)
    quality_multiplier = focus_quality or FOCUS_NEUTRAL_QUALITY
    completion_bonus = FOCUS_GOAL_BONUS if completed_goal else 0
    distraction_penalty = min(
        (distraction_count or 0) * FOCUS_PENALTY_PER_DISTRACTION,
        base_points * 0.5,
    )

    points = round_half_up(
        base_points * (quality_multiplier / FOCUS_NEUTRAL_QUALITY)
        + completion_bonus
        - distraction_penalty
    )
    return max(points, 1)


# =============================================================================
# ===================== DAR PUNTOS ============================================
# =============================================================================

def award_points(
    db: Session,
    user: User,
    points: int,
    reason: RewardReason,
    meta: Optional[dict] = None,
    day: Optional[date] = None,
) -> AwardResult:
    """
    Abona puntos a un usuario.

      1. total_points = total_points + N  (un solo UPDATE, sin leer-modificar-escribir)
      2. nivel recalculado a partir del nuevo total
      3. se añade una fila a RewardHistory
      4. DailyProgress.points_earned de hoy += N

    No hace commit: la unidad de trabajo es de quien llama.
    """
    if points < 0:
        raise ValidationFailure("Points awarded cannot be negative")
    if points == 0:
        return AwardResult(points=0, new_total_points=user.total_points,
                           new_level=user.level, leveled_up=False)

    # Los cambios pendientes del usuario deben llegar a la BD antes del refresh
    db.flush()
    db.query(User).filter(User.id == user.id).update(
        {User.total_points: User.total_points + points},
        synchronize_session=False,
    )
    db.refresh(user, ["total_points"])

    old_level = user.level
    new_level = level_for_points(user.total_points)
    if new_level != old_level:
        user.level = new_level

    db.add(RewardHistory(
        user_id=user.id,
        points_earned=points,
        reason=RewardReason(reason).value,
        meta=json.dumps(meta) if meta is not None else None,
    ))
    record_daily_activity(db, user.id, day or clock.today(), points_earned=points)

    leveled_up = new_level > old_level
    if leveled_up:
        logger.info(f"⬆️ {user.username} sube a nivel {new_level}")
    logger.info(f"✨ +{points} pts para {user.username} ({RewardReason(reason).value})")

    return AwardResult(points=points, new_total_points=user.total_points,
                       new_level=new_level, leveled_up=leveled_up)


# =============================================================================
# ===================== RACHAS ================================================
# =============================================================================
# Hueco desde la última actividad (días naturales):
#   sin actividad   → 1
#   0               → igual (varias acciones el mismo día cuentan una vez)
#   1               → +1
#   2               → +1   (se perdona un día saltado)
#   3 o más         → se archiva la racha vieja y se reinicia a 1

GRACE_DAYS = 2
STREAK_BONUS_EVERY = 7          # días
STREAK_BONUS_PER_DAY = 5        # puntos por día de racha en cada bonus semanal


def update_streak(db: Session, user: User, today: Optional[date] = None) -> StreakUpdate:
    """
    Registra actividad en `today` y mueve la racha del usuario.

    Da `racha * 5` puntos de bonus cada vez que la racha llega a un nuevo
    múltiplo de 7. No hace commit.
    """
    today = today or clock.today()
    previous = user.current_streak or 0
    longest = user.longest_streak or 0
    last_active = user.last_active_date
    broken = False

    if last_active is None:
        new_streak = 1
        user.streak_start_date = today
    else:
        gap = clock.days_between(last_active, today)
        if gap <= 0:
            # Mismo día (o un reloj que fue hacia atrás): nada que hacer
            return StreakUpdate(previous_streak=previous, current_streak=previous,
                                longest_streak=longest, changed=False)
        if gap <= GRACE_DAYS:
            new_streak = previous + 1
            if user.streak_start_date is None:
                user.streak_start_date = last_active if previous else today
        else:
            if previous > 0:
                db.add(StreakHistory(
                    user_id=user.id,
                    streak_count=previous,
                    start_date=user.streak_start_date or last_active,
                    end_date=last_active,
                    missed_days=gap - 1,
                ))
                broken = True
                logger.info(f"💔 {user.username} pierde una racha de {previous} días ({gap - 1} días sin actividad)")
            new_streak = 1
            user.streak_start_date = today

    user.current_streak = new_streak
    user.longest_streak = max(new_streak, longest)
    user.last_active_date = today

    bonus = 0
    if new_streak > previous and new_streak % STREAK_BONUS_EVERY == 0:
        bonus = new_streak * STREAK_BONUS_PER_DAY
        award_points(db, user, bonus, RewardReason.streak_bonus,
                     {"streak_days": new_streak}, day=today)
        logger.info(f"🔥 {user.username} llega a {new_streak} días de racha (+{bonus})")

    return StreakUpdate(
        previous_streak=previous,
        current_streak=new_streak,
        longest_streak=user.longest_streak,
        changed=True,
        broken=broken,
        bonus_points=bonus,
    )
