"""
Tests de las sesiones de foco.
"""

from datetime import date

import pytest

from errors import Conflict, Forbidden, NotFound, ValidationFailure
from focus import (
    end_focus_session, get_focus_statistics, list_active_sessions,
    list_session_history, start_focus_session
)
from models import DailyProgress, FocusSession, RewardHistory, RewardReason, User
from schemas import FocusSessionEnd, FocusSessionStart

DAY = date(2026, 3, 11)


def _start(db, user, minutes=25):
    return start_focus_session(db, user, FocusSessionStart(planned_duration=minutes))


def test_end_session_pays_points(db, user):
    """Test 50 min, calidad 5, objetivo cumplido, 1 distracción → 25 puntos."""
    session = _start(db, user, 50)

    result = end_focus_session(db, user, session.id, FocusSessionEnd(
        actual_duration=50, focus_quality=5, completed_goal=True, distraction_count=1,
    ), today=DAY)

    assert result.points_earned == 25
    assert result.session.ended_at is not None
    assert result.session.points_earned == 25
    assert "focus_first" in {a.key for a in result.new_achievements}
    assert user.current_streak == 1
    assert user.last_active_date == DAY


def test_end_session_records_daily_progress(db, user):
    for quality in (4, 2):
        session = _start(db, user)
        end_focus_session(db, user, session.id, FocusSessionEnd(
            actual_duration=20, focus_quality=quality,
        ), today=DAY)

    progress = db.query(DailyProgress).filter(DailyProgress.date == DAY).one()
    assert progress.focus_sessions == 2
    assert progress.focus_minutes == 40
    assert progress.average_focus_quality == 3.0


def test_session_ends_once(db, user):
    session = _start(db, user)
    end_focus_session(db, user, session.id, FocusSessionEnd(actual_duration=25), today=DAY)

    with pytest.raises(Conflict):
        end_focus_session(db, user, session.id, FocusSessionEnd(actual_duration=25), today=DAY)


def test_invalid_metrics_write_nothing(db, user):
    session = _start(db, user)
    bad = FocusSessionEnd.model_construct(actual_duration=0, distraction_count=0,
                                          focus_quality=None, completed_goal=False)

    with pytest.raises(ValidationFailure):
        end_focus_session(db, user, session.id, bad, today=DAY)

    db.refresh(session)
    assert session.ended_at is None
    assert user.total_points == 0


def test_missing_and_foreign_sessions(db, make_user):
    owner = make_user("ada")
    other = make_user("bob")
    session = _start(db, owner)

    with pytest.raises(NotFound):
        end_focus_session(db, owner, 9999, FocusSessionEnd(actual_duration=5), today=DAY)
    with pytest.raises(Forbidden):
        end_focus_session(db, other, session.id, FocusSessionEnd(actual_duration=5), today=DAY)


def test_active_history_and_statistics(db, user):
    open_session = _start(db, user)
    done = _start(db, user)
    end_focus_session(db, user, done.id, FocusSessionEnd(
        actual_duration=30, focus_quality=4, completed_goal=True,
    ), today=DAY)

    assert [s.id for s in list_active_sessions(db, user)] == [open_session.id]
    assert [s.id for s in list_session_history(db, user)] == [done.id]

    stats = get_focus_statistics(db, user)
    assert stats.total_sessions == 1
    assert stats.total_minutes == 30
    assert stats.total_hours == 0.5
    assert stats.average_focus_quality == 4.0
    assert stats.completion_rate == 100


def test_unrated_session_does_not_skew_average(db, user):
    """Test que una sesión sin valoración no cuenta en la media del día."""
    for quality in (5, None, 1):
        session = _start(db, user)
        end_focus_session(db, user, session.id, FocusSessionEnd(
            actual_duration=20, focus_quality=quality,
        ), today=DAY)

    progress = db.query(DailyProgress).filter(DailyProgress.date == DAY).one()
    assert progress.focus_sessions == 3
    assert progress.rated_focus_sessions == 2
    assert progress.average_focus_quality == 3.0


def test_overlapping_ends_pay_once(two_sessions):
    first, second = two_sessions
    ada = first.query(User).one()
    session = _start(first, ada)

    late_user = second.get(User, ada.id)
    assert second.get(FocusSession, session.id).ended_at is None

    end_focus_session(first, ada, session.id, FocusSessionEnd(actual_duration=25), today=DAY)
    with pytest.raises(Conflict):
        end_focus_session(second, late_user, session.id, FocusSessionEnd(actual_duration=25), today=DAY)

    payouts = first.query(RewardHistory).filter(
        RewardHistory.reason == RewardReason.focus_session.value
    ).count()
    assert payouts == 1
