"""
Tests de las solicitudes de amistad y los rankings.
"""

import pytest

from errors import Conflict, Forbidden, NotFound, ValidationFailure
from friends import (
    accept_friend_request, decline_friend_request, get_friends_leaderboard,
    get_global_leaderboard, list_friends, list_pending_requests, list_sent_requests,
    remove_friend, search_users, send_friend_request
)
from models import Friendship, UserAchievement


@pytest.fixture
def ada(make_user):
    return make_user("ada", total_points=90)


@pytest.fixture
def bob(make_user):
    return make_user("bob", total_points=40)


def test_request_and_accept(db, ada, bob):
    request = send_friend_request(db, ada, "bob")
    assert request.status == "pending"
    assert [r.id for r in list_pending_requests(db, bob)] == [request.id]
    assert [r.id for r in list_sent_requests(db, ada)] == [request.id]

    accepted = accept_friend_request(db, bob, request.id)

    assert accepted.status == "accepted"
    assert accepted.responded_at is not None
    assert [f.username for f in list_friends(db, ada)] == ["bob"]
    assert [f.username for f in list_friends(db, bob)] == ["ada"]
    # friends_1 para los dos lados
    assert db.query(UserAchievement).count() == 2


def test_request_errors(db, ada, bob):
    with pytest.raises(ValidationFailure):
        send_friend_request(db, ada, "ada")
    with pytest.raises(NotFound):
        send_friend_request(db, ada, "nobody")

    send_friend_request(db, ada, "bob")
    with pytest.raises(Conflict):
        send_friend_request(db, ada, "bob")


def test_crossed_requests_become_friendship(db, ada, bob):
    """Test que pedir amistad a quien ya nos la pidió acepta su solicitud."""
    send_friend_request(db, ada, "bob")
    friendship = send_friend_request(db, bob, "ada")

    assert friendship.status == "accepted"
    assert db.query(Friendship).count() == 1
    with pytest.raises(Conflict):
        send_friend_request(db, ada, "bob")


def test_only_addressee_answers(db, ada, bob, make_user):
    carol = make_user("carol")
    request = send_friend_request(db, ada, "bob")

    with pytest.raises(Forbidden):
        accept_friend_request(db, ada, request.id)
    with pytest.raises(Forbidden):
        decline_friend_request(db, carol, request.id)

    decline_friend_request(db, bob, request.id)
    assert db.query(Friendship).count() == 0


def test_remove_friend(db, ada, bob, make_user):
    carol = make_user("carol")
    request = send_friend_request(db, ada, "bob")
    accept_friend_request(db, bob, request.id)

    with pytest.raises(Forbidden):
        remove_friend(db, carol, request.id)

    remove_friend(db, bob, request.id)
    assert list_friends(db, ada) == []


def test_leaderboards(db, ada, bob, make_user):
    make_user("carol", total_points=500, show_on_leaderboard=False)
    make_user("dave", total_points=50)
    request = send_friend_request(db, ada, "bob")
    accept_friend_request(db, bob, request.id)

    global_board = [e.username for e in get_global_leaderboard(db)]
    assert "carol" not in global_board
    assert global_board[:2] == ["ada", "bob"]

    friends_board = [e.username for e in get_friends_leaderboard(db, ada)]
    assert friends_board == ["ada", "bob"]


def test_search_users(db, ada, bob, make_user):
    make_user("bobby")
    found = [u.username for u in search_users(db, ada, "bob")]
    assert found == ["bob", "bobby"]
    assert search_users(db, ada, "ada") == []
