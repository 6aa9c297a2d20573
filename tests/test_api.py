"""Tests for the REST API."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from priority_queue.api import QueueAPI
from priority_queue.models import QueueSettings, Task
from priority_queue.service import QueueService


@pytest.fixture
def service(state_dir):
    service = QueueService(state_dir, QueueSettings(retry_delay=0), background=False)
    service.start()
    yield service
    service.stop()


@pytest.fixture
def client(service):
    return TestClient(QueueAPI(service).create_app())


def test_service_required():
    with pytest.raises(ValueError):
        QueueAPI(None)


class TestEnqueueEndpoint:
    """Tests for POST /enqueue."""

    def test_enqueue(self, client, service):
        response = client.post("/enqueue", json={
            "content": "Deploy the site",
            "platform": "discord",
            "userId": "u1",
            "priority": "high",
            "metadata": {"channel": "ops"},
            "sessionId": "s1",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True

        task = service.list_queue()[0]
        assert body["taskId"] == task.id
        assert task.platform == "discord"
        assert task.user_id == "u1"
        assert task.metadata == {"channel": "ops"}
        assert task.session_id == "s1"

    def test_numeric_priority(self, client, service):
        client.post("/enqueue", json={"content": "later", "priority": 3})
        client.post("/enqueue", json={"content": "now", "priority": 0})
        client.post("/enqueue", json={"content": "soon", "priority": "high"})

        # "later" started on enqueue but keeps its place by priority
        assert [t.content for t in service.list_queue()] == ["now", "soon", "later"]

    def test_default_platform(self, client, service):
        client.post("/enqueue", json={"content": "x"})
        assert service.list_queue()[0].platform == "api"

    @pytest.mark.parametrize("payload", [{}, {"content": ""}, {"content": "   "}, {"content": "x", "priority": "urgent"}])
    def test_invalid_payload(self, client, service, payload):
        response = client.post("/enqueue", json=payload)

        assert response.status_code == 400
        assert "detail" in response.json()
        assert service.list_queue() == []

    def test_invalid_metadata(self, client):
        response = client.post("/enqueue", json={"content": "x", "metadata": [1, 2]})
        assert response.status_code == 422


class TestStatusEndpoints:
    """Tests for the read-only endpoints."""

    def test_status_idle(self, client):
        response = client.get("/status")

        assert response.status_code == 200
        assert response.json() == {
            "status": "idle",
            "queue": {"pending": 0, "processing": 0, "total": 0},
            "stats": {"completed": 0, "failed": 0, "lastProcessed": None},
            "currentTask": None,
        }

    def test_status_with_current_task(self, client):
        task_id = client.post("/enqueue", json={"content": "- a\n- b"}).json()["taskId"]

        current = client.get("/status").json()["currentTask"]

        assert current["id"] == task_id
        assert current["progress"] == {"completed": 0, "total": 2}

    def test_queue_listing(self, client):
        client.post("/enqueue", json={"content": "first"})
        client.post("/enqueue", json={"content": "second"})

        tasks = client.get("/queue").json()

        assert [t["content"] for t in tasks] == ["first", "second"]
        assert tasks[0]["state"] == "processing"
        assert "retryCount" in tasks[0]
        assert "subTasks" in tasks[0]

    def test_chat(self, client):
        text = client.get("/chat").json()["text"]
        assert text.startswith("📋 *Task Queue Status*")


class TestLifecycleEndpoints:
    """Tests for the task lifecycle endpoints."""

    def test_complete(self, client):
        client.post("/enqueue", json={"content": "Work"})

        response = client.post("/complete", json={"result": {"ok": True}})

        assert response.json() == {"success": True}
        assert client.get("/status").json()["stats"]["completed"] == 1

    def test_complete_without_body(self, client):
        client.post("/enqueue", json={"content": "Work"})
        assert client.post("/complete").json() == {"success": True}

    def test_complete_when_idle(self, client):
        response = client.post("/complete")
        assert response.status_code == 200
        assert response.json() == {"success": False}

    def test_fail_retries(self, client, service):
        client.post("/enqueue", json={"content": "Flaky"})

        assert client.post("/fail", json={"error": "boom"}).json() == {"success": True}
        assert service.list_queue()[0].retry_count == 1

    def test_fail_until_failed(self, client):
        client.post("/enqueue", json={"content": "Flaky"})

        for _ in range(3):
            client.post("/fail")

        stats = client.get("/status").json()["stats"]
        assert stats["failed"] == 1
        assert client.get("/queue").json() == []

    def test_fail_when_idle(self, client):
        assert client.post("/fail").json() == {"success": False}

    def test_complete_subtask(self, client):
        task_id = client.post("/enqueue", json={"content": "- a\n- b"}).json()["taskId"]

        response = client.post(f"/subtasks/{task_id}_sub_1/complete")

        assert response.json() == {"success": True}
        assert client.get("/status").json()["currentTask"]["progress"] == {"completed": 1, "total": 2}
        assert client.post("/subtasks/unknown/complete").json() == {"success": False}

    def test_dequeue(self, state_dir):
        service = QueueService(state_dir, QueueSettings(auto_process=False), background=False)
        service.start()
        try:
            client = TestClient(QueueAPI(service).create_app())
            assert client.post("/dequeue").json() == {"success": False, "taskId": None}

            task_id = client.post("/enqueue", json={"content": "Work"}).json()["taskId"]
            assert client.post("/dequeue").json() == {"success": True, "taskId": task_id}
        finally:
            service.stop()

    def test_pause_resume(self, client):
        assert client.post("/pause").json() == {"success": True}
        client.post("/enqueue", json={"content": "Work"})
        assert client.get("/status").json()["status"] == "paused"

        assert client.post("/resume").json() == {"success": True}
        assert client.get("/status").json()["status"] == "processing"

    def test_clear(self, client):
        client.post("/enqueue", json={"content": "Work"})
        assert client.post("/clear").json() == {"success": True}
        assert len(client.get("/queue").json()) == 1


class TestWithMockService:
    """Request mapping against a mocked service."""

    @pytest.fixture
    def mock_service(self):
        return MagicMock()

    @pytest.fixture
    def mock_client(self, mock_service):
        return TestClient(QueueAPI(mock_service).create_app())

    def test_enqueue_arguments(self, mock_client, mock_service):
        mock_service.enqueue.return_value = Task(id="task_1_aaaaaaaa", content="x")

        response = mock_client.post("/enqueue", json={"content": "x", "priority": 1})

        assert response.json() == {"success": True, "taskId": "task_1_aaaaaaaa"}
        mock_service.enqueue.assert_called_once_with(
            "x",
            platform="api",
            user_id=None,
            priority=1,
            metadata={},
            session_id=None,
        )

    def test_fail_default_error(self, mock_client, mock_service):
        mock_service.fail_task.return_value = True
        mock_client.post("/fail")
        mock_service.fail_task.assert_called_once_with("Unknown error")

    def test_complete_result_passed(self, mock_client, mock_service):
        mock_service.complete_task.return_value = True
        mock_client.post("/complete", json={"result": [1, 2]})
        mock_service.complete_task.assert_called_once_with([1, 2])

    def test_cors_headers(self, mock_client, mock_service):
        mock_service.get_status.return_value = {}
        response = mock_client.get("/status", headers={"Origin": "http://example.com"})
        assert response.headers["access-control-allow-origin"] == "*"
