"""
=============================================================================
SCHEMAS.PY — Esquemas de Validación (Pydantic)
=============================================================================
Los modelos (SQLAlchemy) definen las TABLAS.
Los schemas (Pydantic) definen qué DATOS acepta y devuelve la API, y los
registros tipados que los módulos de dominio devuelven a quien los llama.

Convención de nombres:
  XxxCreate   → para crear algo (POST)
  XxxUpdate   → para actualizar algo (PATCH)
  XxxResponse → lo que devuelve la API (GET)
  el resto → resultados de una operación de dominio
"""

from pydantic import BaseModel, Field, EmailStr
from datetime import date, datetime
from typing import Optional, Literal


# =============================================================================
# ===================== AUTH ==================================================
# =============================================================================

class UserRegister(BaseModel):
    """Datos para registrar un usuario nuevo"""
    email: EmailStr
    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(min_length=6, description="At least 6 characters")
    display_name: Optional[str] = Field(default=None, max_length=100)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    username: str

class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    display_name: Optional[str] = None
    weekly_reset_day: int
    show_on_leaderboard: bool
    total_points: int
    level: int
    current_streak: int
    longest_streak: int
    last_active_date: Optional[date] = None
    created_at: datetime
    model_config = {"from_attributes": True}

class UserUpdate(BaseModel):
    """Campos editables y ajustes del usuario"""
    display_name: Optional[str] = Field(default=None, max_length=100)
    weekly_reset_day: Optional[int] = Field(default=None, ge=0, le=6)
    show_on_leaderboard: Optional[bool] = None


# =============================================================================
# ===================== TAREAS ================================================
# =============================================================================

class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=50)
    tags: list[str] = []
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    energy_required: Optional[int] = Field(default=None, ge=1, le=5)
    difficulty_level: Optional[int] = Field(default=None, ge=1, le=5)
    estimated_duration: Optional[int] = Field(default=None, ge=1, description="minutes")
    due_date: Optional[date] = None
    parent_task_id: Optional[int] = None

class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    energy_required: Optional[int] = Field(default=None, ge=1, le=5)
    difficulty_level: Optional[int] = Field(default=None, ge=1, le=5)
    estimated_duration: Optional[int] = Field(default=None, ge=1)
    due_date: Optional[date] = None
    status: Optional[Literal["pending", "in_progress", "archived"]] = None
    # status → "completed" solo a través de POST /tasks/{id}/complete

class TaskComplete(BaseModel):
    actual_duration: Optional[int] = Field(default=None, ge=1, description="minutes")

class SubtaskResponse(BaseModel):
    id: int
    title: str
    status: str
    reward_points: int
    bonus_points: int
    model_config = {"from_attributes": True}

class TaskResponse(BaseModel):
    id: int
    parent_task_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    priority: int
    energy_required: int
    difficulty_level: int
    estimated_duration: Optional[int] = None
    actual_duration: Optional[int] = None
    status: str
    reward_points: int
    bonus_points: int
    due_date: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    subtasks: list[SubtaskResponse] = []
    model_config = {"from_attributes": True}

class TaskStatistics(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    completion_rate: float
    weekly_completion_rate: int


# =============================================================================
# ===================== SESIONES DE FOCO =======================================
# =============================================================================

class FocusSessionStart(BaseModel):
    task_id: Optional[int] = None
    planned_duration: int = Field(ge=1, description="minutes")
    session_type: Literal["pomodoro", "deep_work", "quick_task"] = "pomodoro"

class FocusSessionEnd(BaseModel):
    actual_duration: int = Field(ge=1, description="minutes")
    distraction_count: int = Field(default=0, ge=0)
    focus_quality: Optional[int] = Field(default=None, ge=1, le=5)
    completed_goal: bool = False

class FocusSessionResponse(BaseModel):
    id: int
    task_id: Optional[int] = None
    session_type: str
    planned_duration: int
    actual_duration: Optional[int] = None
    distraction_count: int
    focus_quality: Optional[int] = None
    completed_goal: bool
    points_earned: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    model_config = {"from_attributes": True}

class FocusStatistics(BaseModel):
    total_sessions: int
    total_minutes: int
    total_hours: float
    average_focus_quality: float
    completion_rate: int


# =============================================================================
# ===================== GAMIFICACIÓN ==========================================
# =============================================================================

class LevelTier(BaseModel):
    name: str
    xp_required: int
    icon: str
    level: int

class LevelInfo(BaseModel):
    level: int
    total_points: int
    points_in_level: int
    points_to_next_level: int
    progress: float  # porcentaje hacia el siguiente nivel
    tier: LevelTier
    next_tier: Optional[LevelTier] = None

class AwardResult(BaseModel):
    points: int
    new_total_points: int
    new_level: int
    leveled_up: bool

class StreakUpdate(BaseModel):
    previous_streak: int
    current_streak: int
    longest_streak: int
    changed: bool
    broken: bool = False
    bonus_points: int = 0

class RewardStats(BaseModel):
    total_points: int
    level: int
    current_streak: int
    longest_streak: int
    last_active_date: Optional[date] = None

class RewardHistoryResponse(BaseModel):
    id: int
    points_earned: int
    reason: str
    meta: Optional[str] = Field(default=None, serialization_alias="metadata")
    created_at: datetime
    model_config = {"from_attributes": True}

class StreakHistoryResponse(BaseModel):
    id: int
    streak_count: int
    start_date: date
    end_date: date
    missed_days: int
    model_config = {"from_attributes": True}

class AchievementResponse(BaseModel):
    id: int
    key: str
    name: str
    description: str
    icon: str
    category: str
    tier: str
    point_value: int
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    model_config = {"from_attributes": True}

class UserStats(BaseModel):
    """Foto de las estadísticas que el evaluador compara con cada umbral"""
    user_id: int
    tasks_completed: int = 0
    total_xp: int = 0
    level: int = 1
    streak: int = 0
    friends_count: int = 0
    focus_sessions: int = 0
    weekly_quests_completed: int = 0
    full_quests_completed: int = 0
    consecutive_quests_completed: int = 0

class LeaderboardEntry(BaseModel):
    id: int
    username: str
    display_name: Optional[str] = None
    total_points: int
    level: int
    current_streak: int
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== RESULTADOS DE OPERACIONES ==============================
# =============================================================================

class TaskCompletion(BaseModel):
    task: TaskResponse
    points_earned: int
    bonus_points: int
    new_level: int
    new_total_points: int
    leveled_up: bool
    streak: StreakUpdate
    new_achievements: list[AchievementResponse] = []

class FocusResult(BaseModel):
    session: FocusSessionResponse
    points_earned: int
    new_achievements: list[AchievementResponse] = []


# =============================================================================
# ===================== MISIONES SEMANALES ====================================
# =============================================================================

class QuestTaskCreate(BaseModel):
    task_id: Optional[int] = None
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    xp: int = Field(default=10, ge=0)
    source: Literal["existing", "new"] = "new"

class WeeklyQuestCreate(BaseModel):
    overwhelm_level: Literal["light", "medium", "full"]
    tasks: list[QuestTaskCreate] = Field(min_length=1)

class QuestTaskResponse(BaseModel):
    id: int
    weekly_quest_id: int
    task_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    xp: int
    source: str
    completed: bool
    completed_at: Optional[datetime] = None
    model_config = {"from_attributes": True}

class WeeklyQuestResponse(BaseModel):
    id: int
    overwhelm_level: str
    week_start: date
    week_end: date
    target_task_count: int
    completed_task_count: int
    xp_multiplier: float
    bonus_xp_earned: int
    status: str
    completed_at: Optional[datetime] = None
    created_at: datetime
    tasks: list[QuestTaskResponse] = []
    days_remaining: Optional[int] = None
    model_config = {"from_attributes": True}

class QuestTaskResult(BaseModel):
    quest_task: QuestTaskResponse
    quest_status: str
    completed_task_count: int
    quest_completed: bool = False
    # quest_completed → True solo en la llamada que completó la misión
    bonus_xp: Optional[int] = None
    new_achievements: list[AchievementResponse] = []


# =============================================================================
# ===================== AMIGOS ================================================
# =============================================================================

class FriendRequestCreate(BaseModel):
    username: str = Field(min_length=1, max_length=50)

class FriendshipResponse(BaseModel):
    id: int
    requester_id: int
    addressee_id: int
    status: str
    created_at: datetime
    responded_at: Optional[datetime] = None
    model_config = {"from_attributes": True}

class FriendResponse(BaseModel):
    friendship_id: int
    user_id: int
    username: str
    display_name: Optional[str] = None
    total_points: int
    level: int
    current_streak: int


# =============================================================================
# ===================== ANALÍTICA =============================================
# =============================================================================

class DailyProgressResponse(BaseModel):
    date: date
    tasks_created: int
    tasks_completed: int
    focus_minutes: int
    focus_sessions: int
    average_focus_quality: Optional[float] = None
    points_earned: int
    model_config = {"from_attributes": True}
