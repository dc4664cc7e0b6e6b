"""
Tests de las rachas: periodo de gracia, reinicios, historial y bonus.
"""

from datetime import date, timedelta

from gamification import update_streak
from models import RewardHistory, StreakHistory

DAY = date(2026, 3, 11)


def _days(n):
    return timedelta(days=n)


def test_first_activity_starts_streak(db, user):
    result = update_streak(db, user, DAY)
    db.commit()

    assert result.previous_streak == 0
    assert result.current_streak == 1
    assert result.changed is True
    assert user.last_active_date == DAY
    assert user.streak_start_date == DAY
    assert user.longest_streak == 1


def test_same_day_is_noop(db, user):
    """Test que varias acciones en un mismo día cuentan una sola vez."""
    update_streak(db, user, DAY)
    result = update_streak(db, user, DAY)
    db.commit()

    assert result.changed is False
    assert result.current_streak == 1
    assert result.bonus_points == 0
    assert user.current_streak == 1


def test_next_day_extends(make_user, db):
    user = make_user(current_streak=3, longest_streak=3, last_active_date=DAY - _days(1),
                     streak_start_date=DAY - _days(3))
    result = update_streak(db, user, DAY)

    assert result.current_streak == 4
    assert result.broken is False
    assert user.streak_start_date == DAY - _days(3)


def test_one_skipped_day_is_forgiven(make_user, db):
    """Test que un hueco de 2 días todavía alarga la racha."""
    user = make_user(current_streak=3, longest_streak=3, last_active_date=DAY - _days(2))
    result = update_streak(db, user, DAY)

    assert result.current_streak == 4
    assert db.query(StreakHistory).count() == 0


def test_gap_of_three_days_resets(make_user, db):
    """Test que un hueco de 3 o más días archiva la racha y vuelve a 1."""
    start = DAY - _days(10)
    last = DAY - _days(3)
    user = make_user(current_streak=8, longest_streak=8, last_active_date=last,
                     streak_start_date=start)

    result = update_streak(db, user, DAY)
    db.commit()

    assert result.current_streak == 1
    assert result.broken is True
    assert user.longest_streak == 8
    assert user.streak_start_date == DAY

    history = db.query(StreakHistory).all()
    assert len(history) == 1
    assert history[0].streak_count == 8
    assert history[0].start_date == start
    assert history[0].end_date == last
    assert history[0].missed_days == 2


def test_reset_without_start_date_falls_back_to_last_active(make_user, db):
    last = DAY - _days(5)
    user = make_user(current_streak=2, longest_streak=4, last_active_date=last)
    update_streak(db, user, DAY)
    db.commit()

    history = db.query(StreakHistory).one()
    assert history.start_date == last
    assert history.missed_days == 4


def test_longest_streak_never_decreases(make_user, db):
    user = make_user(current_streak=2, longest_streak=12, last_active_date=DAY - _days(1))
    update_streak(db, user, DAY)
    assert user.longest_streak == 12

    update_streak(db, user, DAY + _days(10))
    assert user.current_streak == 1
    assert user.longest_streak == 12


def test_seven_day_bonus_awarded_once(make_user, db):
    """Test que llegar a 7 paga 7*5 puntos y repetir el día no paga nada."""
    user = make_user(current_streak=6, longest_streak=6, last_active_date=DAY - _days(1))

    result = update_streak(db, user, DAY)
    db.commit()
    assert result.current_streak == 7
    assert result.bonus_points == 35
    assert user.total_points == 35

    again = update_streak(db, user, DAY)
    db.commit()
    assert again.bonus_points == 0
    assert user.total_points == 35

    bonuses = db.query(RewardHistory).filter(RewardHistory.reason == "streak_bonus").all()
    assert len(bonuses) == 1


def test_fourteen_day_bonus(make_user, db):
    user = make_user(current_streak=13, longest_streak=13, last_active_date=DAY - _days(2))
    result = update_streak(db, user, DAY)
    assert result.bonus_points == 70


def test_restart_at_one_never_pays_bonus(make_user, db):
    user = make_user(current_streak=6, longest_streak=6, last_active_date=DAY - _days(4))
    result = update_streak(db, user, DAY)
    assert result.current_streak == 1
    assert result.bonus_points == 0
