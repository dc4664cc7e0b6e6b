"""
=============================================================================
FRIENDS.PY — Amistades y Rankings
=============================================================================
Una amistad es una fila por pareja de usuarios:

  requester ──request──→ addressee      status: pending
                          accept        status: accepted
                          decline       se borra la fila

Cualquiera de los dos puede romper una amistad aceptada. Si mandamos una
solicitud a alguien que ya nos mandó una pendiente, se acepta la suya.
"""

import logging
from typing import Optional

from sqlalchemy import or_, and_
from sqlalchemy.orm import Session

import clock
from achievements import evaluate_achievements
from errors import NotFound, Forbidden, Conflict, ValidationFailure
from models import User, Friendship, FriendshipStatus
from schemas import FriendResponse, LeaderboardEntry

logger = logging.getLogger("ardenia.friends")


def _pair_filter(user_a_id: int, user_b_id: int):
    return or_(
        and_(Friendship.requester_id == user_a_id, Friendship.addressee_id == user_b_id),
        and_(Friendship.requester_id == user_b_id, Friendship.addressee_id == user_a_id),
    )


def get_user_by_username(db: Session, username: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if user is None:
        raise NotFound("User not found")
    return user


def _get_friendship(db: Session, friendship_id: int) -> Friendship:
    friendship = db.query(Friendship).filter(Friendship.id == friendship_id).first()
    if friendship is None:
        raise NotFound("Friend request not found")
    return friendship


def _accept(db: Session, friendship: Friendship):
    friendship.status = FriendshipStatus.accepted.value
    friendship.responded_at = clock.utcnow()
    db.commit()
    db.refresh(friendship)
    # Los dos ganan un amigo
    evaluate_achievements(db, friendship.requester)
    evaluate_achievements(db, friendship.addressee)


# =============================================================================
# ===================== SOLICITUDES ===========================================
# =============================================================================

def send_friend_request(db: Session, user: User, username: str) -> Friendship:
    target = get_user_by_username(db, username)
    if target.id == user.id:
        raise ValidationFailure("You cannot add yourself as a friend")

    existing = db.query(Friendship).filter(_pair_filter(user.id, target.id)).first()
    if existing is not None:
        if existing.status == FriendshipStatus.accepted.value:
            raise Conflict("You are already friends")
        if existing.requester_id == user.id:
            raise Conflict("Friend request already sent")
        # Pidió primero el otro: esta solicitud responde a la suya
        _accept(db, existing)
        logger.info(f"🤝 {user.username} y {target.username} ahora son amigos")
        return existing

    friendship = Friendship(
        requester_id=user.id,
        addressee_id=target.id,
        status=FriendshipStatus.pending.value,
    )
    db.add(friendship)
    db.commit()
    db.refresh(friendship)
    logger.info(f"📨 Solicitud de amistad: {user.username} → {target.username}")
    return friendship


def accept_friend_request(db: Session, user: User, friendship_id: int) -> Friendship:
    friendship = _get_friendship(db, friendship_id)
    if friendship.addressee_id != user.id:
        raise Forbidden("Only the addressee can accept a friend request")
    if friendship.status != FriendshipStatus.pending.value:
        raise Conflict("Friend request is not pending")

    _accept(db, friendship)
    logger.info(f"🤝 {friendship.requester.username} y {user.username} ahora son amigos")
    return friendship


def decline_friend_request(db: Session, user: User, friendship_id: int):
    friendship = _get_friendship(db, friendship_id)
    if friendship.addressee_id != user.id:
        raise Forbidden("Only the addressee can decline a friend request")
    if friendship.status != FriendshipStatus.pending.value:
        raise Conflict("Friend request is not pending")

    db.delete(friendship)
    db.commit()


def remove_friend(db: Session, user: User, friendship_id: int):
    """Rompe una amistad aceptada, o cancela una solicitud que mandamos"""
    friendship = _get_friendship(db, friendship_id)
    if user.id not in (friendship.requester_id, friendship.addressee_id):
        raise Forbidden("Access denied")
    if friendship.status == FriendshipStatus.pending.value and friendship.requester_id != user.id:
        raise Conflict("Decline the request instead")

    db.delete(friendship)
    db.commit()


# =============================================================================
# ===================== LISTAS ================================================
# =============================================================================

def list_friends(db: Session, user: User) -> list[FriendResponse]:
    friendships = db.query(Friendship).filter(
        Friendship.status == FriendshipStatus.accepted.value,
        or_(Friendship.requester_id == user.id, Friendship.addressee_id == user.id)
    ).all()

    friends = []
    for friendship in friendships:
        other = friendship.addressee if friendship.requester_id == user.id else friendship.requester
        friends.append(FriendResponse(
            friendship_id=friendship.id,
            user_id=other.id,
            username=other.username,
            display_name=other.display_name,
            total_points=other.total_points,
            level=other.level,
            current_streak=other.current_streak,
        ))
    friends.sort(key=lambda f: f.total_points, reverse=True)
    return friends


def list_pending_requests(db: Session, user: User) -> list[Friendship]:
    """Solicitudes que esperan la respuesta de este usuario"""
    return db.query(Friendship).filter(
        Friendship.addressee_id == user.id,
        Friendship.status == FriendshipStatus.pending.value
    ).order_by(Friendship.created_at.desc()).all()


def list_sent_requests(db: Session, user: User) -> list[Friendship]:
    return db.query(Friendship).filter(
        Friendship.requester_id == user.id,
        Friendship.status == FriendshipStatus.pending.value
    ).order_by(Friendship.created_at.desc()).all()


def search_users(db: Session, user: User, query: str, limit: int = 10) -> list[User]:
    pattern = f"%{query}%"
    return db.query(User).filter(
        User.id != user.id,
        or_(User.username.ilike(pattern), User.display_name.ilike(pattern))
    ).order_by(User.username).limit(limit).all()


# =============================================================================
# ===================== RANKINGS ==============================================
# =============================================================================

def get_global_leaderboard(db: Session, limit: int = 10) -> list[LeaderboardEntry]:
    users = db.query(User).filter(
        User.show_on_leaderboard.is_(True)
    ).order_by(User.total_points.desc(), User.id).limit(limit).all()
    return [LeaderboardEntry.model_validate(u) for u in users]


def get_friends_leaderboard(db: Session, user: User,
                            limit: Optional[int] = None) -> list[LeaderboardEntry]:
    """El usuario y sus amigos aceptados, por puntos totales"""
    friend_ids = {f.user_id for f in list_friends(db, user)}
    friend_ids.add(user.id)

    query = db.query(User).filter(User.id.in_(friend_ids)).order_by(
        User.total_points.desc(), User.id
    )
    if limit:
        query = query.limit(limit)
    return [LeaderboardEntry.model_validate(u) for u in query.all()]
