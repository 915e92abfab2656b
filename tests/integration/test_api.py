"""
API Integration Tests
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from gitfarm.config import settings
from gitfarm.db.models import CommitJob, Task, TaskLog, User


def task_payload(**overrides) -> dict:
    payload = {
        "name": "daily garden",
        "repositories": [{"full_name": "octo/garden", "commits": 2}],
        "distribution": "EQUAL",
        "schedule": "30 9 * * *",
        "credit_limit": 20,
    }
    payload.update(overrides)
    return payload


def pattern(*cells, unselected=()) -> list:
    selected = [{"week": w, "day": d, "selected": True} for w, d in cells]
    return selected + [{"week": w, "day": d, "selected": False} for w, d in unselected]


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_check(self, test_client: TestClient):
        response = test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    def test_liveness_check(self, test_client: TestClient):
        response = test_client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.asyncio
    async def test_readiness_check(self, async_client):
        response = await async_client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"]["status"] == "ok"
        assert data["checks"]["redis"]["runner_in_progress"] is False


class TestCronEndpoint:
    """Tests for the runner trigger."""

    @pytest.mark.asyncio
    async def test_runs_due_tasks(self, async_client, test_db, user, fake_github):
        fake_github.add_repo("octo/garden")
        task = Task(
            user_id=user.id,
            name="due",
            repositories=[{"full_name": "octo/garden", "commits": 2}],
            distribution="EQUAL",
            schedule="0 9 * * *",
            credits_used=0,
            active=True,
        )
        test_db.add(task)
        await test_db.commit()

        response = await async_client.post("/api/cron/run-tasks")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "completed"
        assert data["summary"]["tasks_found"] == 1

        logs = (await test_db.execute(select(TaskLog).where(TaskLog.task_id == task.id))).scalars().all()
        assert [log.message for log in logs] == ["Executed successfully."]

    @pytest.mark.asyncio
    async def test_get_is_accepted(self, async_client):
        response = await async_client.get("/api/cron/run-tasks")

        assert response.status_code == 200
        assert response.json()["summary"]["tasks_found"] == 0

    @pytest.mark.asyncio
    async def test_secret_required(self, async_client, monkeypatch):
        monkeypatch.setattr(settings, "cron_secret", "s3cret")

        assert (await async_client.post("/api/cron/run-tasks")).status_code == 401
        wrong = await async_client.post(
            "/api/cron/run-tasks", headers={"Authorization": "Bearer nope"}
        )
        assert wrong.status_code == 401

        response = await async_client.post(
            "/api/cron/run-tasks", headers={"Authorization": "Bearer s3cret"}
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_skipped_when_another_runner_holds_lock(self, async_client, mock_redis):
        mock_redis.set.return_value = None

        response = await async_client.post("/api/cron/run-tasks")

        assert response.status_code == 200
        assert response.json()["status"] == "skipped"


class TestTaskEndpoints:
    """Tests for task management."""

    @pytest.mark.asyncio
    async def test_requires_user(self, async_client):
        assert (await async_client.get("/api/v1/tasks")).status_code == 401
        unknown = await async_client.get("/api/v1/tasks", headers={"X-User-Id": str(uuid.uuid4())})
        assert unknown.status_code == 401

    @pytest.mark.asyncio
    async def test_list_tasks_empty(self, async_client, auth_headers):
        response = await async_client.get("/api/v1/tasks", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"tasks": [], "total": 0}

    @pytest.mark.asyncio
    async def test_create_task(self, async_client, auth_headers):
        response = await async_client.post("/api/v1/tasks", json=task_payload(), headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "daily garden"
        assert data["active"] is True
        assert data["credits_used"] == 0
        assert data["schedule_description"] == "Daily at 09:30"
        assert data["next_run_at"] is not None
        assert data["repositories"] == [{"full_name": "octo/garden", "commits": 2}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"schedule": "every day"},
        {"repositories": []},
        {"repositories": [{"full_name": "not a repo", "commits": 1}]},
        {"repositories": [{"full_name": "../garden", "commits": 1}]},
        {"distribution": "SOMETIMES"},
        {"credit_limit": 0},
    ])
    async def test_create_task_validation(self, async_client, auth_headers, overrides):
        response = await async_client.post(
            "/api/v1/tasks", json=task_payload(**overrides), headers=auth_headers
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_task_with_logs(self, async_client, auth_headers, test_db):
        created = (await async_client.post(
            "/api/v1/tasks", json=task_payload(), headers=auth_headers
        )).json()
        test_db.add(TaskLog(
            task_id=uuid.UUID(created["id"]),
            status="FAILED",
            message="Repo error: Repository not found",
            repository="octo/garden",
            details=[],
        ))
        await test_db.commit()

        response = await async_client.get(f"/api/v1/tasks/{created['id']}", headers=auth_headers)

        assert response.status_code == 200
        logs = response.json()["logs"]
        assert len(logs) == 1
        assert logs[0]["status"] == "FAILED"
        assert logs[0]["message"] == "Repo error: Repository not found"

    @pytest.mark.asyncio
    async def test_update_task(self, async_client, auth_headers):
        created = (await async_client.post(
            "/api/v1/tasks", json=task_payload(), headers=auth_headers
        )).json()

        response = await async_client.patch(
            f"/api/v1/tasks/{created['id']}",
            json={"name": "hourly", "schedule": "15 * * * *", "distribution": "RANDOM"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "hourly"
        assert data["distribution"] == "RANDOM"
        assert data["schedule_description"] == "Every hour at :15"
        assert data["credit_limit"] == 20

    @pytest.mark.asyncio
    async def test_toggle_task(self, async_client, auth_headers):
        created = (await async_client.post(
            "/api/v1/tasks", json=task_payload(), headers=auth_headers
        )).json()
        url = f"/api/v1/tasks/{created['id']}/toggle"

        paused = await async_client.post(url, headers=auth_headers)
        resumed = await async_client.post(url, headers=auth_headers)

        assert paused.json()["active"] is False
        assert resumed.json()["active"] is True

    @pytest.mark.asyncio
    async def test_delete_task(self, async_client, auth_headers, test_db):
        created = (await async_client.post(
            "/api/v1/tasks", json=task_payload(), headers=auth_headers
        )).json()
        test_db.add(TaskLog(
            task_id=uuid.UUID(created["id"]),
            status="SUCCESS",
            message="Executed successfully.",
            details=[],
        ))
        await test_db.commit()

        response = await async_client.delete(f"/api/v1/tasks/{created['id']}", headers=auth_headers)

        assert response.status_code == 204
        missing = await async_client.get(f"/api/v1/tasks/{created['id']}", headers=auth_headers)
        assert missing.status_code == 404
        remaining = (await test_db.execute(select(TaskLog))).scalars().all()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_other_users_task_is_hidden(self, async_client, auth_headers, test_db):
        created = (await async_client.post(
            "/api/v1/tasks", json=task_payload(), headers=auth_headers
        )).json()
        other = User(name="Other", email="other@example.com", credits=5)
        test_db.add(other)
        await test_db.commit()
        headers = {"X-User-Id": str(other.id)}

        assert (await async_client.get(f"/api/v1/tasks/{created['id']}", headers=headers)).status_code == 404
        assert (await async_client.delete(f"/api/v1/tasks/{created['id']}", headers=headers)).status_code == 404
        assert (await async_client.get("/api/v1/tasks", headers=headers)).json()["total"] == 0


class TestCommitEndpoints:
    """Tests for ad-hoc commit jobs."""

    @pytest.mark.asyncio
    async def test_create_job(self, async_client, auth_headers, dispatched_jobs):
        response = await async_client.post(
            "/api/v1/commits",
            json={"pattern": pattern((0, 0), (0, 1), unselected=[(0, 2)]), "repository": "octo/garden"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["total_commits"] == 2
        assert dispatched_jobs == [data["job_id"]]

        job = await async_client.get(f"/api/v1/commits/{data['job_id']}", headers=auth_headers)
        assert job.json()["status"] == "PENDING"
        assert job.json()["total_commits"] == 2

        listing = await async_client.get("/api/v1/commits", headers=auth_headers)
        assert [j["id"] for j in listing.json()["jobs"]] == [data["job_id"]]

    @pytest.mark.asyncio
    async def test_no_days_selected(self, async_client, auth_headers, dispatched_jobs):
        response = await async_client.post(
            "/api/v1/commits",
            json={"pattern": pattern(unselected=[(0, 0)]), "repository": "octo/garden"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "No days selected"
        assert dispatched_jobs == []

    @pytest.mark.asyncio
    async def test_insufficient_credits(self, async_client, auth_headers, test_db, dispatched_jobs):
        cells = [(week, 0) for week in range(11)]

        response = await async_client.post(
            "/api/v1/commits",
            json={"pattern": pattern(*cells), "repository": "octo/garden"},
            headers=auth_headers,
        )

        assert response.status_code == 402
        assert response.json()["detail"] == "Insufficient credits. Required: 11, Available: 10"
        assert response.json()["available"] == 10
        assert (await test_db.execute(select(CommitJob))).scalars().all() == []
        assert dispatched_jobs == []

    @pytest.mark.asyncio
    async def test_invalid_cell(self, async_client, auth_headers):
        response = await async_client.post(
            "/api/v1/commits",
            json={"pattern": pattern((52, 0)), "repository": "octo/garden"},
            headers=auth_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_job(self, async_client, auth_headers):
        response = await async_client.get(f"/api/v1/commits/{uuid.uuid4()}", headers=auth_headers)

        assert response.status_code == 404


class TestGitHubEndpoints:
    """Tests for repository inspection and initialization."""

    @pytest.mark.asyncio
    async def test_list_repositories(self, async_client, auth_headers, fake_github):
        fake_github.add_repo("octo/garden")

        response = await async_client.get("/api/v1/github/repositories", headers=auth_headers)

        assert response.status_code == 200
        repos = response.json()["repositories"]
        assert [r["full_name"] for r in repos] == ["octo/garden"]
        assert repos[0]["default_branch"] == "main"

    @pytest.mark.asyncio
    async def test_repository_state(self, async_client, auth_headers, fake_github):
        head = fake_github.add_repo("octo/garden")

        response = await async_client.get(
            "/api/v1/github/repositories/octo/garden/state", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "repository": "octo/garden",
            "branch": "main",
            "sha": head,
            "commit_count": 1,
        }

    @pytest.mark.asyncio
    async def test_empty_repository_then_initialize(self, async_client, auth_headers, fake_github):
        fake_github.add_repo("octo/garden", empty=True)
        state_url = "/api/v1/github/repositories/octo/garden/state"

        empty = await async_client.get(state_url, headers=auth_headers)
        assert empty.status_code == 409
        assert "initialize" in empty.json()["detail"]

        init = await async_client.post(
            "/api/v1/github/repositories/octo/garden/initialize", headers=auth_headers
        )
        assert init.status_code == 201

        assert (await async_client.get(state_url, headers=auth_headers)).status_code == 200

    @pytest.mark.asyncio
    async def test_missing_repository(self, async_client, auth_headers):
        response = await async_client.get(
            "/api/v1/github/repositories/octo/missing/state", headers=auth_headers
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_github_not_connected(self, async_client, test_db):
        stranger = User(name=None, email="nogh@example.com", credits=0)
        test_db.add(stranger)
        await test_db.commit()

        response = await async_client.get(
            "/api/v1/github/repositories", headers={"X-User-Id": str(stranger.id)}
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "GitHub not connected"
