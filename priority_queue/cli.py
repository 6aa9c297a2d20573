"""
Command-line interface for the priority queue.

Commands:
- init, config show/set
- enqueue, status, chat, list
- dequeue, complete, fail, subtask
- pause, resume, clear
- serve
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Any, Callable

from priority_queue.config import ConfigManager
from priority_queue.daemon import QueueDaemon, configure_logging
from priority_queue.exceptions import InvalidInput, QueueLocked
from priority_queue.formatting import format_for_chat
from priority_queue.models import Priority, QueueConfig
from priority_queue.service import QueueService


# Seconds a one-shot command waits for the state directory
LOCK_TIMEOUT = 2.0


def _parse_json_arg(value: str) -> Any:
    """Parse a JSON argument, falling back to the raw string."""
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _with_service(args, operation: Callable[[QueueService], int]) -> int:
    """Run operation against a foreground service holding the state lock."""
    config_manager = ConfigManager(args.config)
    service = QueueService(config_manager.state_dir, config_manager.settings, background=False)

    try:
        service.start(lock_timeout=LOCK_TIMEOUT)
    except QueueLocked as e:
        print(f"❌ {e}", file=sys.stderr)
        print("   Is 'priority-queue serve' running? Use its HTTP API instead.", file=sys.stderr)
        return 1

    try:
        return operation(service)
    finally:
        service.stop()


# =============================================================================
# INIT / CONFIG COMMANDS
# =============================================================================

def cmd_init(args):
    """Create the config file with default settings."""
    config_manager = ConfigManager(args.config)

    if config_manager.exists() and not args.force:
        print(f"⚠️  Config already exists: {config_manager.config_file}")
        print("Use --force to overwrite it with defaults.")
        return 0

    if args.force:
        config_manager.config = QueueConfig()

    try:
        config_manager.save_config()
    except (OSError, QueueLocked) as e:
        print(f"❌ Failed to save configuration: {e}", file=sys.stderr)
        return 1

    print(f"✅ Config created at {config_manager.config_file}")
    return 0


def cmd_config_show(args):
    """Show current settings."""
    config_manager = ConfigManager(args.config)

    print(f"Configuration: {config_manager.config_file}")
    print(json.dumps(config_manager.settings.model_dump(), indent=2))
    return 0


def cmd_config_set(args):
    """Update one setting."""
    config_manager = ConfigManager(args.config)

    try:
        config_manager.update_settings(**{args.key: _parse_json_arg(args.value)})
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print(f"✅ {args.key} = {getattr(config_manager.settings, args.key)!r}")
    return 0


# =============================================================================
# QUEUE COMMANDS
# =============================================================================

def cmd_enqueue(args):
    """Add a task."""
    content = " ".join(args.content)
    metadata = _parse_json_arg(args.metadata) if args.metadata else None

    def operation(service: QueueService) -> int:
        try:
            task = service.enqueue(
                content,
                platform=args.platform,
                user_id=args.user_id,
                priority=args.priority,
                metadata=metadata,
                session_id=args.session_id,
            )
        except InvalidInput as e:
            print(f"❌ {e}", file=sys.stderr)
            return 1

        print(json.dumps(task.model_dump(mode="json", by_alias=True), indent=2))
        return 0

    return _with_service(args, operation)


def cmd_status(args):
    """Show status as JSON."""
    def operation(service: QueueService) -> int:
        print(json.dumps(service.get_status(), indent=2))
        return 0

    return _with_service(args, operation)


def cmd_chat(args):
    """Show status formatted for chat."""
    def operation(service: QueueService) -> int:
        print(format_for_chat(service.get_status()), end="")
        return 0

    return _with_service(args, operation)


def cmd_list(args):
    """List tasks in queue order."""
    def operation(service: QueueService) -> int:
        tasks = service.list_queue()

        if args.json:
            print(json.dumps([t.model_dump(mode="json", by_alias=True) for t in tasks], indent=2))
            return 0

        if not tasks:
            print("📭 Queue is empty")
            return 0

        print(f"\n📋 Tasks ({len(tasks)}):")
        for task in tasks:
            first_line = task.content.splitlines()[0] if task.content else ""
            print(f"   [{task.priority.name:<8}] {task.state.value:<10} {task.id}  {first_line[:60]}")
            if task.sub_tasks:
                print(f"      Sub-tasks: {task.count_completed_subtasks()}/{len(task.sub_tasks)}")
        return 0

    return _with_service(args, operation)


def cmd_dequeue(args):
    """Start the next pending task."""
    def operation(service: QueueService) -> int:
        task = service.dequeue()
        if task is None:
            print("⏭️  Nothing started (busy, paused or empty)")
            return 1
        print(f"🔄 Processing: {task.id} [{task.platform}]")
        return 0

    return _with_service(args, operation)


def cmd_complete(args):
    """Complete the current task."""
    result = _parse_json_arg(args.result) if args.result else None

    def operation(service: QueueService) -> int:
        if not service.complete_task(result):
            print("⚠️  No task is processing")
            return 1
        print("✅ Task completed")
        return 0

    return _with_service(args, operation)


def cmd_fail(args):
    """Fail the current task."""
    error = " ".join(args.error) or "Unknown error"

    def operation(service: QueueService) -> int:
        if not service.fail_task(error):
            print("⚠️  No task is processing")
            return 1
        print("❌ Task failure recorded")
        return 0

    return _with_service(args, operation)


def cmd_subtask(args):
    """Complete a sub-task of the current task."""
    def operation(service: QueueService) -> int:
        if not service.complete_subtask(args.subtask_id):
            print(f"⚠️  Sub-task '{args.subtask_id}' not found on the current task")
            return 1
        print(f"✅ Sub-task completed: {args.subtask_id}")
        return 0

    return _with_service(args, operation)


def cmd_pause(args):
    """Pause processing."""
    def operation(service: QueueService) -> int:
        service.pause()
        print("⏸️  Queue paused")
        return 0

    return _with_service(args, operation)


def cmd_resume(args):
    """Resume processing."""
    def operation(service: QueueService) -> int:
        service.resume()
        print("▶️  Queue resumed")
        return 0

    return _with_service(args, operation)


def cmd_clear(args):
    """Remove completed and failed tasks."""
    def operation(service: QueueService) -> int:
        removed = service.clear()
        print(f"🧹 Queue cleared ({removed} removed)")
        return 0

    return _with_service(args, operation)


# =============================================================================
# SERVE COMMAND
# =============================================================================

def cmd_serve(args):
    """Run the HTTP server and inbox watcher."""
    configure_logging(logging.INFO)

    config_manager = ConfigManager(args.config)
    daemon = QueueDaemon(
        config_manager,
        host=args.host,
        port=args.port,
        watch_inbox=False if args.no_inbox else None,
    )

    try:
        daemon.start()
    except QueueLocked as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    return 0


# =============================================================================
# MAIN
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="priority-queue",
        description="Persistent multi-platform priority task queue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  priority-queue init
  priority-queue enqueue "Deploy the site" --platform discord --priority high
  priority-queue status
  priority-queue complete --result '{"ok": true}'
  priority-queue fail "Build broke"
  priority-queue serve --port 3850

Platforms: discord, telegram, lark, wechat, signal, whatsapp
Priority: critical, high, normal, low
        """
    )

    parser.add_argument("--config", type=Path, default=None, help="Path to configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show engine log messages")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Init / config
    init_parser = subparsers.add_parser("init", help="Create config file")
    init_parser.add_argument("--force", action="store_true", help="Overwrite existing config")
    init_parser.set_defaults(func=cmd_init)

    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_subparsers = config_parser.add_subparsers(dest="config_command", help="Config commands")

    config_show_parser = config_subparsers.add_parser("show", help="Show settings")
    config_show_parser.set_defaults(func=cmd_config_show)

    config_set_parser = config_subparsers.add_parser("set", help="Change a setting")
    config_set_parser.add_argument("key", help="Setting name (e.g. max_retries)")
    config_set_parser.add_argument("value", help="New value (JSON or plain string)")
    config_set_parser.set_defaults(func=cmd_config_set)

    # Queue commands
    enqueue_parser = subparsers.add_parser("enqueue", aliases=["add"], help="Add a task")
    enqueue_parser.add_argument("content", nargs="+", help="Task content")
    enqueue_parser.add_argument("--platform", default="cli", help="Input channel name")
    enqueue_parser.add_argument(
        "--priority",
        default="normal",
        choices=[p.name.lower() for p in Priority],
        help="Task priority"
    )
    enqueue_parser.add_argument("--user-id", default=None, help="Submitting user")
    enqueue_parser.add_argument("--session-id", default=None, help="Session ID")
    enqueue_parser.add_argument("--metadata", default=None, help="Metadata as JSON object")
    enqueue_parser.set_defaults(func=cmd_enqueue)

    status_parser = subparsers.add_parser("status", aliases=["stat"], help="Show JSON status")
    status_parser.set_defaults(func=cmd_status)

    chat_parser = subparsers.add_parser("chat", help="Show chat-formatted status")
    chat_parser.set_defaults(func=cmd_chat)

    list_parser = subparsers.add_parser("list", help="List tasks in queue order")
    list_parser.add_argument("--json", action="store_true", help="Print tasks as JSON")
    list_parser.set_defaults(func=cmd_list)

    dequeue_parser = subparsers.add_parser("dequeue", help="Start the next pending task")
    dequeue_parser.set_defaults(func=cmd_dequeue)

    complete_parser = subparsers.add_parser("complete", aliases=["done"], help="Mark current task complete")
    complete_parser.add_argument("--result", default=None, help="Result (JSON or plain string)")
    complete_parser.set_defaults(func=cmd_complete)

    fail_parser = subparsers.add_parser("fail", help="Mark current task failed")
    fail_parser.add_argument("error", nargs="*", help="Error message")
    fail_parser.set_defaults(func=cmd_fail)

    subtask_parser = subparsers.add_parser("subtask", help="Mark a sub-task of the current task complete")
    subtask_parser.add_argument("subtask_id", help="Sub-task ID")
    subtask_parser.set_defaults(func=cmd_subtask)

    pause_parser = subparsers.add_parser("pause", help="Pause processing")
    pause_parser.set_defaults(func=cmd_pause)

    resume_parser = subparsers.add_parser("resume", help="Resume processing")
    resume_parser.set_defaults(func=cmd_resume)

    clear_parser = subparsers.add_parser("clear", help="Remove completed/failed tasks")
    clear_parser.set_defaults(func=cmd_clear)

    # Server
    serve_parser = subparsers.add_parser("serve", aliases=["server"], help="Start API server")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default 3850)")
    serve_parser.add_argument("--no-inbox", action="store_true", help="Do not watch the inbox directory")
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in ("serve", "server"):
        configure_logging(logging.INFO if args.verbose else logging.WARNING)

    if hasattr(args, 'func'):
        return args.func(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
