"""Tests for chat status formatting."""

from priority_queue.formatting import format_for_chat


def _status(**overrides):
    status = {
        "status": "idle",
        "queue": {"pending": 0, "processing": 0, "total": 0},
        "stats": {"completed": 0, "failed": 0, "lastProcessed": None},
        "currentTask": None,
    }
    status.update(overrides)
    return status


class TestFormatForChat:
    """Tests for format_for_chat."""

    def test_idle(self):
        assert format_for_chat(_status()) == (
            "📋 *Task Queue Status*\n"
            "\n"
            "Status: 💤 Idle\n"
            "Queue: 0 pending, 0 processing\n"
            "Stats: ✅ 0 completed, ❌ 0 failed\n"
        )

    def test_current_task_with_progress(self):
        text = format_for_chat(_status(
            status="processing",
            queue={"pending": 2, "processing": 1, "total": 3},
            stats={"completed": 4, "failed": 1, "lastProcessed": "task_1_aaaaaaaa"},
            currentTask={
                "id": "task_2_bbbbbbbb",
                "content": "Ship it",
                "platform": "discord",
                "priority": "high",
                "retryCount": 0,
                "progress": {"completed": 1, "total": 3},
            },
        ))

        assert "Status: ⚙️ Processing" in text
        assert "Queue: 2 pending, 1 processing" in text
        assert "Stats: ✅ 4 completed, ❌ 1 failed" in text
        assert "🔄 *Current Task:*" in text
        assert "ID: task_2_bbbbbbbb" in text
        assert "Platform: discord" in text
        assert "Content: Ship it..." in text
        assert text.endswith("Progress: 1/3 sub-tasks\n")

    def test_current_task_without_progress(self):
        text = format_for_chat(_status(
            status="paused",
            currentTask={
                "id": "t",
                "content": "x",
                "platform": "cli",
                "priority": "normal",
                "retryCount": 1,
                "progress": None,
            },
        ))

        assert "Status: ⏸️ Paused" in text
        assert "Progress" not in text

    def test_unknown_status_passes_through(self):
        assert "Status: mystery" in format_for_chat(_status(status="mystery"))

    def test_engine_status(self, engine):
        engine.enqueue("Deploy\n- build", platform="telegram")
        text = format_for_chat(engine.get_status())
        assert "Platform: telegram" in text
        assert "Progress: 0/1 sub-tasks" in text
