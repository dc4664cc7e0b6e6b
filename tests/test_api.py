"""
Tests de extremo a extremo de la API HTTP con el TestClient de FastAPI.
"""


def _register(client, username):
    response = client.post("/auth/register", json={
        "email": f"{username}@example.com",
        "username": username,
        "password": "secret123",
    })
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_register_login_and_me(client):
    _register(client, "ada")

    duplicate = client.post("/auth/register", json={
        "email": "ada@example.com", "username": "other", "password": "secret123",
    })
    assert duplicate.status_code == 409

    wrong = client.post("/auth/login", json={"email": "ada@example.com", "password": "nope!!"})
    assert wrong.status_code == 401

    login = client.post("/auth/login", json={"email": "ada@example.com", "password": "secret123"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["username"] == "ada"
    assert me.json()["level"] == 1


def test_protected_routes_need_token(client):
    assert client.get("/tasks").status_code in (401, 403)
    bad = client.get("/tasks", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


def test_update_settings(auth_client):
    response = auth_client.patch("/auth/me", json={"weekly_reset_day": 3, "show_on_leaderboard": False})
    assert response.status_code == 200
    assert response.json()["weekly_reset_day"] == 3
    assert response.json()["show_on_leaderboard"] is False

    assert auth_client.patch("/auth/me", json={"weekly_reset_day": 7}).status_code == 422


def test_task_flow(auth_client):
    created = auth_client.post("/tasks", json={
        "title": "Tax return", "difficulty_level": 5, "energy_required": 5,
        "estimated_duration": 30, "priority": 5,
    })
    assert created.status_code == 201
    task = created.json()
    assert task["reward_points"] == 31

    assert auth_client.post(f"/tasks/{task['id']}/start").json()["status"] == "in_progress"

    completed = auth_client.post(f"/tasks/{task['id']}/complete", json={"actual_duration": 40})
    assert completed.status_code == 200
    body = completed.json()
    assert body["points_earned"] == 31
    assert body["bonus_points"] == 0
    assert body["streak"]["current_streak"] == 1
    assert [a["key"] for a in body["new_achievements"]] == ["first_task"]

    again = auth_client.post(f"/tasks/{task['id']}/complete")
    assert again.status_code == 409

    stats = auth_client.get("/rewards/stats").json()
    assert stats["total_points"] == 41
    assert stats["current_streak"] == 1

    history = auth_client.get("/rewards/history").json()
    assert {h["reason"] for h in history} == {"task_completed", "achievement_unlocked"}
    assert "metadata" in history[0]

    assert auth_client.get("/tasks/statistics").json()["completed"] == 1
    assert auth_client.get("/rewards/level").json()["level"] == 1
    assert [a["key"] for a in auth_client.get("/rewards/achievements").json()] == ["first_task"]


def test_task_errors(auth_client):
    assert auth_client.get("/tasks/9999").status_code == 404
    assert auth_client.post("/tasks", json={"title": "x", "priority": 9}).status_code == 422

    task = auth_client.post("/tasks", json={"title": "Mine"}).json()
    bob = _register(auth_client, "bob")
    response = auth_client.get(f"/tasks/{task['id']}", headers=bob)
    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied"


def test_focus_flow(auth_client):
    session = auth_client.post("/focus/start", json={"planned_duration": 50})
    assert session.status_code == 201
    session_id = session.json()["id"]

    bad = auth_client.post(f"/focus/{session_id}/end", json={"actual_duration": 50, "focus_quality": 6})
    assert bad.status_code == 422

    ended = auth_client.post(f"/focus/{session_id}/end", json={
        "actual_duration": 50, "focus_quality": 5, "completed_goal": True, "distraction_count": 1,
    })
    assert ended.status_code == 200
    assert ended.json()["points_earned"] == 25

    assert auth_client.post(f"/focus/{session_id}/end", json={"actual_duration": 5}).status_code == 409
    assert auth_client.get("/focus/active").json() == []
    assert len(auth_client.get("/focus/history").json()) == 1
    assert auth_client.get("/focus/statistics").json()["total_minutes"] == 50


def test_weekly_quest_flow(auth_client):
    levels = auth_client.get("/weekly-quests/levels").json()
    assert levels["levels"]["light"]["task_count"] == 5
    assert auth_client.get("/weekly-quests/current").json() is None

    created = auth_client.post("/weekly-quests", json={
        "overwhelm_level": "light",
        "tasks": [{"title": f"Step {i}", "xp": 10} for i in range(5)],
    })
    assert created.status_code == 201
    quest = created.json()
    assert quest["target_task_count"] == 5
    assert 1 <= quest["days_remaining"] <= 7

    assert auth_client.post("/weekly-quests", json={
        "overwhelm_level": "light", "tasks": [{"title": "Again"}],
    }).status_code == 409

    result = None
    for quest_task in quest["tasks"]:
        result = auth_client.post(f"/weekly-quests/tasks/{quest_task['id']}/complete").json()
    assert result["quest_completed"] is True
    assert result["bonus_xp"] == 25

    first = quest["tasks"][0]["id"]
    assert auth_client.post(f"/weekly-quests/tasks/{first}/uncomplete").status_code == 409
    assert auth_client.get("/weekly-quests/current").json() is None
    assert [q["status"] for q in auth_client.get("/weekly-quests/history").json()] == ["completed"]


def test_weekly_quest_needs_tasks(auth_client):
    response = auth_client.post("/weekly-quests", json={"overwhelm_level": "medium", "tasks": []})
    assert response.status_code == 422


def test_friends_flow(auth_client):
    bob = _register(auth_client, "bob")

    sent = auth_client.post("/friends/requests", json={"username": "bob"})
    assert sent.status_code == 201
    request_id = sent.json()["id"]

    pending = auth_client.get("/friends/requests", headers=bob).json()
    assert [r["id"] for r in pending] == [request_id]

    assert auth_client.post(f"/friends/requests/{request_id}/accept").status_code == 403
    accepted = auth_client.post(f"/friends/requests/{request_id}/accept", headers=bob)
    assert accepted.json()["status"] == "accepted"

    friends = auth_client.get("/friends").json()
    assert [f["username"] for f in friends] == ["bob"]
    board = auth_client.get("/friends/leaderboard").json()
    assert {e["username"] for e in board} == {"ada", "bob"}

    assert auth_client.delete(f"/friends/{request_id}", headers=bob).status_code == 200
    assert auth_client.get("/friends").json() == []


def test_analytics_endpoints(auth_client):
    auth_client.post("/tasks", json={"title": "Something"})

    dashboard = auth_client.get("/analytics/dashboard").json()
    assert dashboard["tasks"]["total"] == 1
    assert len(auth_client.get("/analytics/progress?days=7").json()) == 1
    assert auth_client.get("/analytics/weekly-report").json()["period"] == "7 days"
    assert "recommendations" in auth_client.get("/analytics/insights").json()
