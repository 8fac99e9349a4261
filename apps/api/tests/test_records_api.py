"""
HTTP tests for the auth and health record routes (TestClient over FakeRedis).
"""
MORNING = {
    "sleep_quality": 7,
    "energy_waking": 6,
    "mental_clarity": 8,
    "physical_readiness": 5,
    "motivation": 9,
}


class TestHealth:
    def test_health_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["healthy"] is True

    def test_health_503_when_redis_down(self, client, fake_redis):
        fake_redis.down = True
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json() == {"healthy": False, "status": "unhealthy", "redis": "unavailable"}

    def test_ping(self, client):
        assert client.get("/ping").json() == {"pong": True}


class TestAuthRoutes:
    def test_register_login_me_logout(self, client):
        response = client.post(
            "/v1/auth/register",
            json={"username": "Alice", "password": "correct-horse", "display_name": "Alice"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["user"]["username"] == "alice"
        assert body["token_type"] == "bearer"

        response = client.post("/v1/auth/login", json={"username": "alice", "password": "correct-horse"})
        assert response.status_code == 200
        headers = {"Authorization": f"Bearer {response.json()['session_token']}"}

        me = client.get("/v1/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["id"] == body["user"]["id"]

        assert client.post("/v1/auth/logout", headers=headers).status_code == 204
        assert client.get("/v1/auth/me", headers=headers).status_code == 401

    def test_duplicate_username_conflict(self, client, auth_headers):
        response = client.post(
            "/v1/auth/register",
            json={"username": "ALICE", "password": "correct-horse", "display_name": "Other"},
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "USERNAME_TAKEN"

    def test_short_password_rejected(self, client):
        response = client.post(
            "/v1/auth/register",
            json={"username": "bob", "password": "pw1", "display_name": "Bob"},
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR_PASSWORD"

    def test_bad_credentials(self, client, auth_headers):
        response = client.post("/v1/auth/login", json={"username": "alice", "password": "wrong-horse"})
        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_CREDENTIALS"

    def test_missing_token(self, client):
        response = client.get("/v1/assessments")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token(self, client):
        response = client.get("/v1/assessments", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_SESSION"


class TestAssessments:
    def test_upsert_merges_by_date(self, client, auth_headers):
        first = client.post(
            "/v1/assessments",
            json={"date": "2024-03-01", "morning_assessment": MORNING},
            headers=auth_headers,
        )
        assert first.status_code == 200
        assert first.json()["morning_assessment"]["exercise_readiness_score"] == 35

        second = client.post(
            "/v1/assessments",
            json={"date": "2024-03-01", "daily_notes": "short walk", "symptoms": ["fatigue"]},
            headers=auth_headers,
        )
        merged = second.json()
        assert merged["daily_notes"] == "short walk"
        assert merged["morning_assessment"]["exercise_readiness_score"] == 35

        fetched = client.get("/v1/assessments/2024-03-01", headers=auth_headers).json()
        assert fetched == merged

    def test_missing_date_is_null(self, client, auth_headers):
        response = client.get("/v1/assessments/2024-01-01", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() is None

    def test_list_most_recent_first_with_limit(self, client, auth_headers):
        for day in ("2024-03-02", "2024-03-01", "2024-03-03"):
            client.post("/v1/assessments", json={"date": day}, headers=auth_headers)

        dates = [a["date"] for a in client.get("/v1/assessments", headers=auth_headers).json()]
        assert dates == ["2024-03-03", "2024-03-02", "2024-03-01"]

        limited = client.get("/v1/assessments?limit=2", headers=auth_headers).json()
        assert [a["date"] for a in limited] == ["2024-03-03", "2024-03-02"]

    def test_delete_is_idempotent(self, client, auth_headers):
        client.post("/v1/assessments", json={"date": "2024-03-01"}, headers=auth_headers)

        assert client.delete("/v1/assessments/2024-03-01", headers=auth_headers).status_code == 204
        assert client.delete("/v1/assessments/2024-03-01", headers=auth_headers).status_code == 204
        assert client.get("/v1/assessments", headers=auth_headers).json() == []

    def test_invalid_rating_rejected(self, client, auth_headers):
        bad = dict(MORNING, motivation=11)
        response = client.post(
            "/v1/assessments", json={"date": "2024-03-01", "morning_assessment": bad}, headers=auth_headers
        )
        assert response.status_code == 422

    def test_users_are_isolated(self, client, auth_headers):
        client.post("/v1/assessments", json={"date": "2024-03-01"}, headers=auth_headers)

        bob = client.post(
            "/v1/auth/register",
            json={"username": "bob", "password": "correct-horse", "display_name": "Bob"},
        ).json()
        bob_headers = {"Authorization": f"Bearer {bob['session_token']}"}

        assert client.get("/v1/assessments", headers=bob_headers).json() == []
        assert client.get("/v1/assessments/2024-03-01", headers=bob_headers).json() is None


class TestFatigueScalesAndSessions:
    def test_fatigue_scale_crud(self, client, auth_headers):
        created = client.post(
            "/v1/fatigue-scales",
            json={"id": "scale-1", "date": "2024-03-01", "type": "FACIT-F", "scores": [2] * 13},
            headers=auth_headers,
        )
        assert created.status_code == 201
        body = created.json()
        assert body["total_score"] == 26
        assert body["user_id"].startswith("user_")

        listed = client.get("/v1/fatigue-scales", headers=auth_headers).json()
        assert [s["id"] for s in listed] == ["scale-1"]
        assert client.get("/v1/fatigue-scales/scale-1", headers=auth_headers).json()["type"] == "FACIT-F"

        assert client.delete("/v1/fatigue-scales/scale-1", headers=auth_headers).status_code == 204
        assert client.get("/v1/fatigue-scales/scale-1", headers=auth_headers).json() is None

    def test_invalid_scale_rejected(self, client, auth_headers):
        response = client.post(
            "/v1/fatigue-scales",
            json={"date": "2024-03-01", "type": "FSS", "scores": [8] * 9},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_exercise_session_crud(self, client, auth_headers):
        created = client.post(
            "/v1/exercise-sessions",
            json={
                "id": "walk-1",
                "date": "2024-03-01",
                "exercise_name": "Walking",
                "duration_minutes": 20,
                "session": {
                    "pre_exercise": {"time": "08:00", "last_meal": 2, "hydration": 7, "baseline_rpe": 1},
                    "during_exercise": [{"time": "08:10", "rpe": 4, "talk_test": True, "symptoms": []}],
                    "post_exercise": {"immediate_rpe": 5, "satisfaction": 8},
                },
            },
            headers=auth_headers,
        )
        assert created.status_code == 201

        listed = client.get("/v1/exercise-sessions", headers=auth_headers).json()
        assert listed[0]["session"]["during_exercise"][0]["rpe"] == 4

        assert client.delete("/v1/exercise-sessions/walk-1", headers=auth_headers).status_code == 204
        assert client.get("/v1/exercise-sessions", headers=auth_headers).json() == []


class TestBulk:
    def test_export_import_and_clear(self, client, auth_headers):
        client.post("/v1/assessments", json={"date": "2024-03-01", "morning_assessment": MORNING}, headers=auth_headers)
        client.post(
            "/v1/fatigue-scales",
            json={"id": "scale-1", "date": "2024-03-01", "type": "FSS", "scores": [4] * 9},
            headers=auth_headers,
        )

        export = client.get("/v1/export", headers=auth_headers).json()
        assert export["username"] == "alice"
        assert len(export["assessments"]) == 1
        assert len(export["fatigue_scales"]) == 1

        cleared = client.delete("/v1/records", headers=auth_headers).json()
        assert cleared["removed"] == 4
        assert client.get("/v1/assessments", headers=auth_headers).json() == []

        summary = client.post("/v1/import", json=export, headers=auth_headers).json()
        assert summary == {"assessments": 1, "fatigue_scales": 1, "exercise_sessions": 0}
        restored = client.get("/v1/assessments/2024-03-01", headers=auth_headers).json()
        assert restored["morning_assessment"]["exercise_readiness_score"] == 35

    def test_report_summary(self, client, auth_headers):
        client.post(
            "/v1/assessments",
            json={"date": "2024-03-01", "morning_assessment": MORNING, "symptoms": ["fatigue", "headache"]},
            headers=auth_headers,
        )
        client.post(
            "/v1/assessments",
            json={"date": "2024-03-02", "symptoms": ["fatigue"]},
            headers=auth_headers,
        )

        report = client.get("/v1/reports/summary", headers=auth_headers).json()

        assert report["days_tracked"] == 2
        assert report["avg_readiness_score"] == 18  # 35 + 0 over two days, rounded
        assert report["avg_energy_level"] == 3.0
        assert report["top_symptoms"][0] == {"symptom": "fatigue", "count": 2}


class TestStoreUnavailable:
    def test_write_returns_503(self, client, auth_headers, fake_redis):
        fake_redis.down = True
        response = client.post("/v1/assessments", json={"date": "2024-03-01"}, headers=auth_headers)
        assert response.status_code == 503
        assert response.json()["error_code"] in ("STORE_UNAVAILABLE", "CONNECTION_UNAVAILABLE")

    def test_stores_reconnect_after_outage(self, client, auth_headers, fake_redis):
        fake_redis.down = True
        assert client.get("/health").status_code == 503

        fake_redis.down = False
        assert client.get("/health").status_code == 200
        assert client.get("/v1/assessments", headers=auth_headers).status_code == 200

