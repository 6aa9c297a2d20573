"""Chat-friendly rendering of queue status."""

from typing import Any, Dict


STATUS_LABELS = {
    "processing": "⚙️ Processing",
    "paused": "⏸️ Paused",
    "error": "❌ Error",
    "idle": "💤 Idle",
}


def format_for_chat(status: Dict[str, Any]) -> str:
    """
    Render a get_status() dict as a short Markdown message.

    Args:
        status: Result of TaskQueue.get_status()

    Returns:
        Message text for chat platforms
    """
    queue = status["queue"]
    stats = status["stats"]

    lines = [
        "📋 *Task Queue Status*",
        "",
        f"Status: {STATUS_LABELS.get(status['status'], status['status'])}",
        f"Queue: {queue['pending']} pending, {queue['processing']} processing",
        f"Stats: ✅ {stats['completed']} completed, ❌ {stats['failed']} failed",
    ]

    current = status.get("currentTask")
    if current:
        lines += [
            "",
            "🔄 *Current Task:*",
            f"ID: {current['id']}",
            f"Platform: {current['platform']}",
            f"Content: {current['content']}...",
        ]
        progress = current.get("progress")
        if progress:
            lines.append(f"Progress: {progress['completed']}/{progress['total']} sub-tasks")

    return "\n".join(lines) + "\n"
