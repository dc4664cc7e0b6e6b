"""
=============================================================================
MAIN.PY — La API de Ardenia
=============================================================================
Define TODOS los endpoints REST. Los endpoints son finos: leen la petición,
llaman al módulo de dominio y dan forma a la respuesta. Los módulos de
dominio lanzan subclases de ArdeniaError, que aquí se convierten en JSON.

Secciones:
  1. AUTH          → registro, login, perfil
  2. TASKS         → CRUD, empezar, completar, estadísticas
  3. FOCUS         → sesiones de foco
  4. REWARDS       → nivel, historial, rachas, logros, ranking
  5. WEEKLY QUESTS → el juego del compromiso semanal
  6. FRIENDS       → solicitudes, lista de amigos, ranking de amigos
  7. ANALYTICS     → dashboard, progreso, informe semanal, insights
"""

import os
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import analytics
import clock
import focus
import friends
import tasks
import weekly_quests
from achievements import seed_achievements, evaluate_achievements, list_achievements, to_responses
from auth import hash_password, verify_password, create_access_token, get_current_user
from database import get_db, init_db, SessionLocal
from errors import ArdeniaError, Conflict
from levels import get_level_info
from models import User, RewardHistory, StreakHistory
from schemas import (
    UserRegister, UserLogin, TokenResponse, UserResponse, UserUpdate,
    TaskCreate, TaskUpdate, TaskComplete, TaskResponse, TaskCompletion, TaskStatistics,
    FocusSessionStart, FocusSessionEnd, FocusSessionResponse, FocusResult, FocusStatistics,
    LevelInfo, RewardStats, RewardHistoryResponse, StreakHistoryResponse,
    AchievementResponse, LeaderboardEntry,
    WeeklyQuestCreate, WeeklyQuestResponse, QuestTaskCreate, QuestTaskResponse, QuestTaskResult,
    FriendRequestCreate, FriendshipResponse, FriendResponse, DailyProgressResponse,
)

APP_NAME = "Ardenia"
APP_VERSION = "1.0.0"

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("ardenia.api")


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Arranque:
      1. Crear las tablas que aún no existen
      2. Cargar el catálogo de logros (idempotente)
    """
    logger.info(f"🚀 Arrancando {APP_NAME}...")

    init_db()
    logger.info("✅ Base de datos inicializada")

    db = SessionLocal()
    try:
        seed_achievements(db)
    finally:
        db.close()

    logger.info(f"🎉 {APP_NAME} operativo")
    yield
    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# FASTAPI APP
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Ardenia API",
    description="Task management with an ADHD-friendly gamification layer",
    version=APP_VERSION,
    lifespan=lifespan,
)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# MANEJO DE ERRORES
# ─────────────────────────────────────────────────────────────────────────────

@app.exception_handler(ArdeniaError)
async def ardenia_error_handler(request: Request, exc: ArdeniaError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Errores no manejados → al log con traceback, 500 con cuerpo JSON"""
    logger.error(f"❌ Error no manejado en {request.url}: {exc}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "type": type(exc).__name__,
            "path": str(request.url)
        }
    )


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/", tags=["Health"])
def health_check():
    return {
        "status": "ok",
        "app": APP_NAME,
        "version": APP_VERSION,
        "timestamp": clock.utcnow().isoformat()
    }


# =============================================================================
# ===================== SECCIÓN 1: AUTH =======================================
# =============================================================================

@app.post("/auth/register", response_model=TokenResponse, status_code=201, tags=["Auth"])
def register(data: UserRegister, db: Session = Depends(get_db)):
    if db.query(User).filter(User.email == data.email).first():
        raise Conflict("An account with this email already exists")
    if db.query(User).filter(User.username == data.username).first():
        raise Conflict("Username already taken")

    user = User(
        email=data.email,
        username=data.username,
        display_name=data.display_name or data.username,
        password_hash=hash_password(data.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"👤 Nuevo usuario registrado: {user.username} ({user.email})")
    return TokenResponse(
        access_token=create_access_token(user.id, user.email),
        user_id=user.id,
        username=user.username
    )


@app.post("/auth/login", response_model=TokenResponse, tags=["Auth"])
def login(data: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()
    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    return TokenResponse(
        access_token=create_access_token(user.id, user.email),
        user_id=user.id,
        username=user.username
    )


@app.get("/auth/me", response_model=UserResponse, tags=["Auth"])
def get_me(user: User = Depends(get_current_user)):
    return user


@app.patch("/auth/me", response_model=UserResponse, tags=["Auth"])
def update_me(data: UserUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Nombre visible, día de reinicio semanal, aparecer o no en el ranking"""
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return user


# =============================================================================
# ===================== SECCIÓN 2: TASKS ======================================
# =============================================================================

@app.post("/tasks", response_model=TaskResponse, status_code=201, tags=["Tasks"])
def create_task(data: TaskCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return tasks.create_task(db, user, data)


@app.get("/tasks", response_model=list[TaskResponse], tags=["Tasks"])
def list_tasks(
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[int] = Query(default=None, ge=1, le=5),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return tasks.list_tasks(db, user, status, category, priority)


@app.get("/tasks/statistics", response_model=TaskStatistics, tags=["Tasks"])
def task_statistics(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return tasks.get_task_statistics(db, user)


@app.get("/tasks/{task_id}", response_model=TaskResponse, tags=["Tasks"])
def get_task(task_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return tasks.get_owned_task(db, user, task_id)


@app.patch("/tasks/{task_id}", response_model=TaskResponse, tags=["Tasks"])
def update_task(
    task_id: int, data: TaskUpdate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return tasks.update_task(db, user, task_id, data)


@app.post("/tasks/{task_id}/start", response_model=TaskResponse, tags=["Tasks"])
def start_task(task_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return tasks.start_task(db, user, task_id)


@app.post("/tasks/{task_id}/complete", response_model=TaskCompletion, tags=["Tasks"])
def complete_task(
    task_id: int, data: Optional[TaskComplete] = None,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    actual_duration = data.actual_duration if data else None
    return tasks.complete_task(db, user, task_id, actual_duration)


@app.delete("/tasks/{task_id}", tags=["Tasks"])
def delete_task(task_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    tasks.delete_task(db, user, task_id)
    return {"message": "Task deleted"}


# =============================================================================
# ===================== SECCIÓN 3: FOCUS ======================================
# =============================================================================

@app.post("/focus/start", response_model=FocusSessionResponse, status_code=201, tags=["Focus"])
def start_focus(data: FocusSessionStart, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return focus.start_focus_session(db, user, data)


@app.post("/focus/{session_id}/end", response_model=FocusResult, tags=["Focus"])
def end_focus(
    session_id: int, data: FocusSessionEnd,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return focus.end_focus_session(db, user, session_id, data)


@app.get("/focus/active", response_model=list[FocusSessionResponse], tags=["Focus"])
def active_focus(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return focus.list_active_sessions(db, user)


@app.get("/focus/history", response_model=list[FocusSessionResponse], tags=["Focus"])
def focus_history(
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return focus.list_session_history(db, user, limit)


@app.get("/focus/statistics", response_model=FocusStatistics, tags=["Focus"])
def focus_statistics(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return focus.get_focus_statistics(db, user)


# =============================================================================
# ===================== SECCIÓN 4: REWARDS ====================================
# =============================================================================

@app.get("/rewards/stats", response_model=RewardStats, tags=["Rewards"])
def reward_stats(user: User = Depends(get_current_user)):
    return RewardStats(
        total_points=user.total_points,
        level=user.level,
        current_streak=user.current_streak,
        longest_streak=user.longest_streak,
        last_active_date=user.last_active_date,
    )


@app.get("/rewards/level", response_model=LevelInfo, tags=["Rewards"])
def reward_level(user: User = Depends(get_current_user)):
    return get_level_info(user.total_points)


@app.get("/rewards/history", response_model=list[RewardHistoryResponse], tags=["Rewards"])
def reward_history(
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return db.query(RewardHistory).filter(
        RewardHistory.user_id == user.id
    ).order_by(RewardHistory.created_at.desc(), RewardHistory.id.desc()).limit(limit).all()


@app.get("/rewards/streaks", tags=["Rewards"])
def reward_streaks(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    history = db.query(StreakHistory).filter(
        StreakHistory.user_id == user.id
    ).order_by(StreakHistory.end_date.desc()).limit(10).all()
    return {
        "current_streak": user.current_streak,
        "longest_streak": user.longest_streak,
        "last_active_date": user.last_active_date,
        "history": [StreakHistoryResponse.model_validate(h).model_dump() for h in history],
    }


@app.get("/rewards/achievements", response_model=list[AchievementResponse], tags=["Rewards"])
def unlocked_achievements(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return list_achievements(db, user, unlocked_only=True)


@app.get("/rewards/achievements/all", response_model=list[AchievementResponse], tags=["Rewards"])
def all_achievements(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return list_achievements(db, user)


@app.post("/rewards/achievements/check", response_model=list[AchievementResponse], tags=["Rewards"])
def check_achievements(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Ejecuta el evaluador ahora; devuelve solo lo que desbloquea esta llamada"""
    return to_responses(evaluate_achievements(db, user))


@app.get("/rewards/leaderboard", response_model=list[LeaderboardEntry], tags=["Rewards"])
def global_leaderboard(
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return friends.get_global_leaderboard(db, limit)


# =============================================================================
# ===================== SECCIÓN 5: WEEKLY QUESTS ==============================
# =============================================================================

def _quest_response(quest, today=None) -> WeeklyQuestResponse:
    return WeeklyQuestResponse.model_validate(quest).model_copy(update={
        "days_remaining": weekly_quests.days_remaining(quest, today),
    })


@app.get("/weekly-quests/levels", tags=["Weekly Quests"])
def quest_levels():
    return {
        "levels": weekly_quests.OVERWHELM_LEVELS,
        "xp_multiplier": weekly_quests.WEEKLY_QUEST_XP_MULTIPLIER,
    }


@app.get("/weekly-quests/current", response_model=Optional[WeeklyQuestResponse], tags=["Weekly Quests"])
def current_quest(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    quest = weekly_quests.get_current_quest(db, user)
    return _quest_response(quest) if quest else None


@app.post("/weekly-quests", response_model=WeeklyQuestResponse, status_code=201, tags=["Weekly Quests"])
def create_quest(data: WeeklyQuestCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _quest_response(weekly_quests.create_weekly_quest(db, user, data))


@app.get("/weekly-quests/history", response_model=list[WeeklyQuestResponse], tags=["Weekly Quests"])
def quest_history(
    limit: int = Query(default=10, ge=1, le=52),
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return [_quest_response(q) for q in weekly_quests.list_quest_history(db, user, limit)]


@app.post("/weekly-quests/{quest_id}/tasks", response_model=QuestTaskResponse, status_code=201,
          tags=["Weekly Quests"])
def add_quest_task(
    quest_id: int, data: QuestTaskCreate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return weekly_quests.add_quest_task(db, user, quest_id, data)


@app.post("/weekly-quests/{quest_id}/abandon", response_model=WeeklyQuestResponse, tags=["Weekly Quests"])
def abandon_quest(quest_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _quest_response(weekly_quests.abandon_quest(db, user, quest_id))


@app.post("/weekly-quests/tasks/{quest_task_id}/complete", response_model=QuestTaskResult,
          tags=["Weekly Quests"])
def complete_quest_task(quest_task_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return weekly_quests.complete_quest_task(db, user, quest_task_id)


@app.post("/weekly-quests/tasks/{quest_task_id}/uncomplete", response_model=QuestTaskResult,
          tags=["Weekly Quests"])
def uncomplete_quest_task(quest_task_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return weekly_quests.uncomplete_quest_task(db, user, quest_task_id)


@app.delete("/weekly-quests/tasks/{quest_task_id}", tags=["Weekly Quests"])
def delete_quest_task(quest_task_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    weekly_quests.delete_quest_task(db, user, quest_task_id)
    return {"message": "Quest task deleted"}


# =============================================================================
# ===================== SECCIÓN 6: FRIENDS ====================================
# =============================================================================

@app.get("/friends", response_model=list[FriendResponse], tags=["Friends"])
def list_friends(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return friends.list_friends(db, user)


@app.get("/friends/requests", response_model=list[FriendshipResponse], tags=["Friends"])
def pending_requests(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return friends.list_pending_requests(db, user)


@app.get("/friends/requests/sent", response_model=list[FriendshipResponse], tags=["Friends"])
def sent_requests(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return friends.list_sent_requests(db, user)


@app.post("/friends/requests", response_model=FriendshipResponse, status_code=201, tags=["Friends"])
def send_request(data: FriendRequestCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return friends.send_friend_request(db, user, data.username)


@app.post("/friends/requests/{friendship_id}/accept", response_model=FriendshipResponse, tags=["Friends"])
def accept_request(friendship_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return friends.accept_friend_request(db, user, friendship_id)


@app.post("/friends/requests/{friendship_id}/decline", tags=["Friends"])
def decline_request(friendship_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    friends.decline_friend_request(db, user, friendship_id)
    return {"message": "Friend request declined"}


@app.get("/friends/search", response_model=list[LeaderboardEntry], tags=["Friends"])
def search_users(
    q: str = Query(min_length=1, max_length=50),
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return friends.search_users(db, user, q)


@app.get("/friends/leaderboard", response_model=list[LeaderboardEntry], tags=["Friends"])
def friends_leaderboard(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return friends.get_friends_leaderboard(db, user)


@app.delete("/friends/{friendship_id}", tags=["Friends"])
def remove_friend(friendship_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    friends.remove_friend(db, user, friendship_id)
    return {"message": "Friend removed"}


# =============================================================================
# ===================== SECCIÓN 7: ANALYTICS ==================================
# =============================================================================

@app.get("/analytics/dashboard", tags=["Analytics"])
def dashboard(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return analytics.get_dashboard(db, user)


@app.get("/analytics/progress", response_model=list[DailyProgressResponse], tags=["Analytics"])
def progress(
    days: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return analytics.get_progress_history(db, user, days)


@app.get("/analytics/weekly-report", tags=["Analytics"])
def weekly_report(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return analytics.get_weekly_report(db, user)


@app.get("/analytics/insights", tags=["Analytics"])
def insights(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return analytics.get_insights(db, user)
