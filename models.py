"""
=============================================================================
MODELS.PY — Modelos (Tablas) de la Base de Datos
=============================================================================
Cada clase aquí = una tabla en la base de datos.
Cada atributo de la clase = una columna en esa tabla.

RELACIONES:
  User tiene muchos → Tasks, FocusSessions, filas de DailyProgress, WeeklyQuests...
  Task tiene muchas → subtareas (un solo nivel)
  WeeklyQuest tiene muchas → WeeklyQuestTasks
  Achievement (catálogo) ←→ User a través de UserAchievement

  USER
  ├── tasks[] ──→ subtasks[]
  ├── focus_sessions[]
  ├── daily_progress[]        (una fila por día natural)
  ├── user_achievements[]     (desbloqueados)
  ├── weekly_quests[] ──→ tasks[] (WeeklyQuestTask)
  ├── reward_history[]        (registro solo de inserción)
  └── streak_history[]        (rachas rotas)
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, Float, Text, Date,
    DateTime, ForeignKey, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from database import Base
from clock import utcnow
import enum


# =============================================================================
# ===================== ENUMS (Tipos predefinidos) ============================
# =============================================================================

class TaskStatus(str, enum.Enum):
    """Ciclo de vida: pending → in_progress → completed (o archived)"""
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    archived = "archived"

class FocusSessionType(str, enum.Enum):
    pomodoro = "pomodoro"
    deep_work = "deep_work"
    quick_task = "quick_task"

class OverwhelmLevel(str, enum.Enum):
    """Tamaño del compromiso semanal que elige el usuario"""
    light = "light"     # 5 tareas
    medium = "medium"   # 10 tareas
    full = "full"       # 15 tareas

class QuestStatus(str, enum.Enum):
    """active → completed | failed | abandoned (los tres últimos son finales)"""
    active = "active"
    completed = "completed"
    failed = "failed"
    abandoned = "abandoned"

class QuestTaskSource(str, enum.Enum):
    existing = "existing"   # apunta a una fila de tasks
    new = "new"             # definida dentro de la misión

class AchievementTier(str, enum.Enum):
    bronze = "bronze"
    silver = "silver"
    gold = "gold"
    platinum = "platinum"

class FriendshipStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"

class RewardReason(str, enum.Enum):
    """Etiqueta que se guarda en cada fila de RewardHistory"""
    task_completed = "task_completed"
    focus_session = "focus_session"
    streak_bonus = "streak_bonus"
    achievement_unlocked = "achievement_unlocked"
    quest_task_completed = "quest_task_completed"
    weekly_quest_bonus = "weekly_quest_bonus"


# =============================================================================
# ===================== TABLA 1: USERS ========================================
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # ── Datos básicos ──
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=False)

    # ── Configuración ──
    weekly_reset_day = Column(Integer, default=1, nullable=False)
    # weekly_reset_day → 0=domingo ... 6=sábado (ventana de la misión semanal)
    show_on_leaderboard = Column(Boolean, default=True, nullable=False)

    # ── Gamificación ──
    total_points = Column(Integer, default=0, nullable=False)
    level = Column(Integer, default=1, nullable=False)
    # level → caché, siempre floor(total_points / 100) + 1
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    last_active_date = Column(Date, nullable=True)
    streak_start_date = Column(Date, nullable=True)
    # streak_start_date → primer día de la racha actual (para StreakHistory)

    # ── Timestamps ──
    created_at = Column(DateTime, default=utcnow)

    # ── Relaciones ──
    tasks = relationship("Task", back_populates="user", cascade="all, delete-orphan")
    focus_sessions = relationship("FocusSession", back_populates="user", cascade="all, delete-orphan")
    daily_progress = relationship("DailyProgress", back_populates="user", cascade="all, delete-orphan")
    user_achievements = relationship("UserAchievement", back_populates="user", cascade="all, delete-orphan")
    weekly_quests = relationship("WeeklyQuest", back_populates="user", cascade="all, delete-orphan")
    reward_history = relationship("RewardHistory", back_populates="user", cascade="all, delete-orphan")
    streak_history = relationship("StreakHistory", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 2: TASKS ========================================
# =============================================================================

class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    parent_task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)
    tags = Column(JSON, default=list)

    # ── Atributos que deciden la recompensa ──
    priority = Column(Integer, default=2, nullable=False)           # 1-5
    energy_required = Column(Integer, default=3, nullable=False)    # 1-5
    difficulty_level = Column(Integer, default=3, nullable=False)   # 1-5
    estimated_duration = Column(Integer, nullable=True)             # minutos
    actual_duration = Column(Integer, nullable=True)                # minutos

    status = Column(String(20), default=TaskStatus.pending.value, nullable=False)
    reward_points = Column(Integer, default=0, nullable=False)
    # reward_points → puntos base, calculados al crear la tarea
    bonus_points = Column(Integer, default=0, nullable=False)
    # bonus_points → bonus de racha, calculado al completar la tarea

    due_date = Column(Date, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="tasks")
    parent = relationship("Task", remote_side="Task.id", back_populates="subtasks")
    subtasks = relationship("Task", back_populates="parent", cascade="all, delete-orphan")
    focus_sessions = relationship("FocusSession", back_populates="task")
    quest_entries = relationship("WeeklyQuestTask", back_populates="task")


# =============================================================================
# ===================== TABLA 3: FOCUS_SESSIONS ===============================
# =============================================================================

class FocusSession(Base):
    __tablename__ = "focus_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)

    session_type = Column(String(20), default=FocusSessionType.pomodoro.value)
    planned_duration = Column(Integer, nullable=False)      # minutos
    actual_duration = Column(Integer, nullable=True)        # minutos
    distraction_count = Column(Integer, default=0, nullable=False)
    focus_quality = Column(Integer, nullable=True)          # 1-5
    completed_goal = Column(Boolean, default=False, nullable=False)
    points_earned = Column(Integer, default=0, nullable=False)

    started_at = Column(DateTime, default=utcnow)
    ended_at = Column(DateTime, nullable=True)
    # ended_at → NULL mientras la sesión está abierta; se fija una sola vez

    user = relationship("User", back_populates="focus_sessions")
    task = relationship("Task", back_populates="focus_sessions")


# =============================================================================
# ===================== TABLA 4: DAILY_PROGRESS ===============================
# =============================================================================
# Una fila por usuario y día natural (zona horaria canónica).

class DailyProgress(Base):
    __tablename__ = "daily_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)

    tasks_created = Column(Integer, default=0, nullable=False)
    tasks_completed = Column(Integer, default=0, nullable=False)
    focus_minutes = Column(Integer, default=0, nullable=False)
    focus_sessions = Column(Integer, default=0, nullable=False)
    rated_focus_sessions = Column(Integer, default=0, nullable=False)
    average_focus_quality = Column(Float, nullable=True)
    # media de las sesiones con valoración, solo rated_focus_sessions pesa
    points_earned = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'date', name='uq_daily_progress_date'),
    )

    user = relationship("User", back_populates="daily_progress")


# =============================================================================
# ===================== TABLA 5: ACHIEVEMENTS =================================
# =============================================================================
# Catálogo de logros DISPONIBLES (los define el sistema, se cargan al arrancar)

class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)

    key = Column(String(50), unique=True, nullable=False)
    # key → identificador estable: "first_task", "streak_7", "quest_full"...
    name = Column(String(100), nullable=False)
    description = Column(String(300), nullable=False)
    icon = Column(String(10), default="🏆")
    category = Column(String(30), nullable=False)
    tier = Column(String(20), default=AchievementTier.bronze.value)
    point_value = Column(Integer, default=0, nullable=False)
    requirement = Column(Text, nullable=False)
    # requirement → texto JSON, ej: '{"tasks_completed": 10}'


# =============================================================================
# ===================== TABLA 6: USER_ACHIEVEMENTS ============================
# =============================================================================

class UserAchievement(Base):
    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    achievement_id = Column(Integer, ForeignKey("achievements.id"), nullable=False)

    unlocked_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievement'),
    )

    user = relationship("User", back_populates="user_achievements")
    achievement = relationship("Achievement")


# =============================================================================
# ===================== TABLA 7: WEEKLY_QUESTS ================================
# =============================================================================

class WeeklyQuest(Base):
    __tablename__ = "weekly_quests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    overwhelm_level = Column(String(10), nullable=False)
    week_start = Column(Date, nullable=False)
    week_end = Column(Date, nullable=False)
    # week_end → último día dentro de la ventana (incluido)

    target_task_count = Column(Integer, nullable=False)
    completed_task_count = Column(Integer, default=0, nullable=False)
    # completed_task_count → caché, siempre recalculado desde tasks[].completed
    xp_multiplier = Column(Float, default=1.5, nullable=False)
    bonus_xp_earned = Column(Integer, default=0, nullable=False)

    status = Column(String(20), default=QuestStatus.active.value, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="weekly_quests")
    tasks = relationship(
        "WeeklyQuestTask", back_populates="quest",
        cascade="all, delete-orphan", order_by="WeeklyQuestTask.id"
    )


# =============================================================================
# ===================== TABLA 8: WEEKLY_QUEST_TASKS ===========================
# =============================================================================

class WeeklyQuestTask(Base):
    __tablename__ = "weekly_quest_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    weekly_quest_id = Column(Integer, ForeignKey("weekly_quests.id"), nullable=False)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    xp = Column(Integer, default=10, nullable=False)
    source = Column(String(10), default=QuestTaskSource.new.value, nullable=False)

    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    xp_awarded = Column(Boolean, default=False, nullable=False)
    # xp_awarded → la xp propia de la tarea ya se abonó (nunca dos veces)

    created_at = Column(DateTime, default=utcnow)

    quest = relationship("WeeklyQuest", back_populates="tasks")
    task = relationship("Task", back_populates="quest_entries")


# =============================================================================
# ===================== TABLA 9: REWARD_HISTORY ===============================
# =============================================================================
# Registro solo de inserción: una fila por cada evento que da puntos. Nunca se actualiza.

class RewardHistory(Base):
    __tablename__ = "reward_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    points_earned = Column(Integer, nullable=False)
    reason = Column(String(40), nullable=False)
    meta = Column("metadata", Text, nullable=True)
    # metadata → texto JSON con el contexto del premio (id de tarea, racha...)

    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="reward_history")


# =============================================================================
# ===================== TABLA 10: STREAK_HISTORY ==============================
# =============================================================================
# Rachas que se rompieron (archivadas justo antes de reiniciar)

class StreakHistory(Base):
    __tablename__ = "streak_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    streak_count = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    missed_days = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="streak_history")


# =============================================================================
# ===================== TABLA 11: FRIENDSHIPS =================================
# =============================================================================

class Friendship(Base):
    __tablename__ = "friendships"

    id = Column(Integer, primary_key=True, autoincrement=True)

    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    addressee_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    status = Column(String(20), default=FriendshipStatus.pending.value, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    responded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint('requester_id', 'addressee_id', name='uq_friendship'),
    )

    requester = relationship("User", foreign_keys=[requester_id])
    addressee = relationship("User", foreign_keys=[addressee_id])
