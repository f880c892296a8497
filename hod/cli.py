#!/usr/bin/env python3
"""
HOD - CLI Interface
===================
Command-line tool for hierarchical task lists.

Usage:
    hod init
    hod add --title "Backend" --priority high
    hod add --title "Schema" --parent 1 --dependencies 2
    hod update 1.1 --status in_progress
    hod done 1.1
    hod next --all
    hod list --tree
    hod sync

Configured fields are passed as --<field-name> value (see hod.config.yml).
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .config import create_default_config
from .errors import HodError, TaskValidationError
from .ids import sort_ids
from .manager import TaskManager, TaskRecord, parse_dependencies
from .saga import RECONCILE_HINT
from .tree import detect_orphans, format_tree, tree_to_json

logger = logging.getLogger("hod.cli")


# ========================================
# ARGUMENT HELPERS
# ========================================

def parse_field_args(extra: List[str]) -> Dict[str, str]:
    """['--title', 'X', '--priority=high'] -> {'title': 'X', 'priority': 'high'}"""
    fields: Dict[str, str] = {}
    i = 0
    while i < len(extra):
        token = extra[i]
        if not token.startswith("--") or len(token) <= 2:
            raise TaskValidationError(f"Unexpected argument: {token}")
        name = token[2:]
        if "=" in name:
            name, value = name.split("=", 1)
        else:
            if i + 1 >= len(extra):
                raise TaskValidationError(f"Missing value for --{name}")
            i += 1
            value = extra[i]
        fields[name] = value
        i += 1
    return fields


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hod",
        description="HOD - hierarchical task manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hod init                                  Create hod.config.yml and ./tasks
  hod add --title "Backend"                 Add top-level task
  hod add --title "Schema" --parent 1       Add subtask 1.N
  hod add --title "API" --dependencies 1,2  Add task that waits for 1 and 2
  hod get 1                                 Show a task
  hod update 1 --status in_progress         Change fields (ID goes first)
  hod append 1 --description "More notes"   Append text to a field
  hod done 1                                Mark task as done
  hod delete 1 -r                           Delete task and its subtasks
  hod move 3 --parent 1                     Re-parent task 3 under task 1
  hod next --all                            Show tasks ready to start
  hod list --tree                           Show the task tree
  hod sync                                  Rebuild the index from task files
        """,
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    parser.add_argument("--config", help="Path to hod.config.yml")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # INIT command
    init_parser = subparsers.add_parser("init", help="Create a default configuration")
    init_parser.add_argument("--tasks-dir", default="./tasks", help="Tasks directory")

    # ADD command
    add_parser = subparsers.add_parser("add", help="Add a task", allow_abbrev=False)
    add_parser.add_argument("--parent", help="Top-level task to add a subtask under")
    add_parser.add_argument("--dependencies", help="Comma-separated task IDs")

    # GET command
    get_parser = subparsers.add_parser("get", help="Show a task")
    get_parser.add_argument("id", help="Task ID")
    get_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # UPDATE command
    update_parser = subparsers.add_parser("update", help="Replace task fields", allow_abbrev=False)
    update_parser.add_argument("id", help="Task ID")
    update_parser.add_argument("--dependencies", help="Comma-separated task IDs ('' clears)")

    # APPEND command
    append_parser = subparsers.add_parser("append", help="Append to task fields", allow_abbrev=False)
    append_parser.add_argument("id", help="Task ID")

    # DONE command
    done_parser = subparsers.add_parser("done", help="Mark a task as done")
    done_parser.add_argument("id", help="Task ID")

    # DELETE command
    delete_parser = subparsers.add_parser("delete", help="Delete a task")
    delete_parser.add_argument("id", help="Task ID")
    delete_parser.add_argument("-r", "--recursive", action="store_true", help="Delete subtasks too")

    # MOVE command
    move_parser = subparsers.add_parser("move", help="Move a task under another top-level task")
    move_parser.add_argument("id", help="Task ID")
    move_parser.add_argument("--parent", required=True, help="New parent task ID")

    # NEXT command
    next_parser = subparsers.add_parser("next", help="Show tasks ready to start")
    next_parser.add_argument("--all", action="store_true", help="Show every ready task")
    next_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # LIST command
    list_parser = subparsers.add_parser("list", help="List tasks", allow_abbrev=False)
    list_parser.add_argument("--tree", action="store_true", help="Show as tree")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # SYNC command
    subparsers.add_parser("sync", help="Rebuild the index from task files")

    # MIGRATE command
    migrate_parser = subparsers.add_parser("migrate", help="Convert markdown task files to JSON")
    migrate_parser.add_argument("id", nargs="?", help="Task ID (default: all tasks)")

    return parser


# ========================================
# OUTPUT
# ========================================

def record_to_dict(record: TaskRecord, manager: TaskManager) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": record.id}
    for key, field in manager.config.fields.items():
        value = record.content.get(key)
        if value is not None:
            data[field.name] = value
    if record.entry is not None:
        data["status"] = record.entry.status
        data["dependencies"] = sort_ids(record.entry.dependencies)
    return data


def print_table(records: List[TaskRecord], manager: TaskManager) -> None:
    if not records:
        print("No tasks")
        return

    keys = list(manager.config.fields)
    rows = []
    for record in records:
        row = []
        for key in keys:
            if key == "Status":
                value = record.status
            else:
                value = record.content.get(key)
            row.append(" ".join(value.split()) if value else "-")
        rows.append((record.id, row))

    id_width = max(4, max(len(task_id) for task_id, _ in rows) + 2)
    widths = [max(len(key), *(len(row[i]) for _, row in rows)) for i, key in enumerate(keys)]
    print("ID".ljust(id_width) + "  ".join(key.ljust(w) for key, w in zip(keys, widths)))
    for task_id, row in rows:
        print(task_id.ljust(id_width) + "  ".join(value.ljust(w) for value, w in zip(row, widths)))


def print_record(record: TaskRecord) -> None:
    print(f"📋 [{record.id}] {record.content.title}")
    print(f"   Status: {record.status or '-'}")
    if record.dependencies:
        print(f"   Dependencies: {', '.join(sort_ids(record.dependencies))}")
    if record.content.description:
        print("   Description:")
        for line in record.content.description.splitlines():
            print(f"      {line}")
    for key in sorted(record.content.fields):
        print(f"   {key}: {record.content.fields[key]}")
    if record.subtasks:
        print(f"   Subtasks: {', '.join(record.subtasks)}")


def report_error(error: HodError) -> None:
    print(f"❌ {error.message}", file=sys.stderr)
    for rollback_error in error.rollback_errors:
        print(f"⚠️ Rollback failed: {rollback_error}", file=sys.stderr)
    if error.rollback_errors:
        print(f"⚠️ {RECONCILE_HINT}", file=sys.stderr)


# ========================================
# COMMANDS
# ========================================

def run_command(args: argparse.Namespace, extra: List[str], manager: TaskManager) -> int:
    fields = parse_field_args(extra)
    if fields and args.command not in ("add", "update", "append", "list"):
        raise TaskValidationError(f"Unexpected arguments: {' '.join(extra)}")

    if args.command == "add":
        deps = parse_dependencies(args.dependencies)
        task_id = manager.add_task(fields, dependencies=deps, parent=args.parent)
        print(f"✅ Created task {task_id}")

    elif args.command == "get":
        record = manager.get_task(args.id)
        if args.json:
            data = record_to_dict(record, manager)
            data["subtasks"] = record.subtasks
            print(json.dumps(data, indent=2, ensure_ascii=False))
        else:
            print_record(record)

    elif args.command == "update":
        deps = parse_dependencies(args.dependencies) if args.dependencies is not None else None
        if not fields and deps is None:
            raise TaskValidationError("Nothing to update: pass at least one field")
        manager.update_task(args.id, fields, dependencies=deps)
        print(f"✅ Updated task {args.id}")

    elif args.command == "append":
        if not fields:
            raise TaskValidationError("Nothing to append: pass at least one field")
        manager.append_task(args.id, fields)
        print(f"✅ Appended to task {args.id}")

    elif args.command == "done":
        if manager.mark_done(args.id):
            print(f"⚠️ Task {args.id} is already done")
        else:
            print(f"✅ Completed: {args.id}")

    elif args.command == "delete":
        deleted = manager.delete_task(args.id, recursive=args.recursive)
        print(f"🗑️ Deleted: {', '.join(deleted)}")

    elif args.command == "move":
        new_id = manager.move_task(args.id, args.parent)
        if new_id == args.id:
            print(f"✅ Task {args.id} is already under {args.parent}")
        else:
            print(f"✅ Moved: {args.id} -> {new_id}")

    elif args.command == "next":
        result = manager.next_tasks()
        for warning in result.warnings:
            print(f"⚠️ {warning}", file=sys.stderr)
        if not result.ready:
            print("[]" if args.json else "No tasks ready to start")
            return 0
        ids = result.ready if args.all else result.ready[:1]
        snapshot = manager.index.load()
        records = [
            TaskRecord(id=task_id, content=manager.content.read(task_id), entry=snapshot.get(task_id))
            for task_id in ids
        ]
        if args.json:
            print(json.dumps([record_to_dict(r, manager) for r in records], indent=2, ensure_ascii=False))
        else:
            print("▶️ Ready to start:")
            print_table(records, manager)

    elif args.command == "list":
        records = manager.list_tasks(fields)
        if args.tree:
            result = manager.build_tree(records)
            for warning in result.warnings:
                print(f"⚠️ {warning}", file=sys.stderr)
            if args.json:
                print(json.dumps(tree_to_json(result.tree), indent=2, ensure_ascii=False))
            elif result.tree:
                print(format_tree(result.tree))
                orphans = detect_orphans(result.tree)
                if orphans:
                    print(f"⚠️ Orphaned subtasks: {', '.join(orphans)}", file=sys.stderr)
            else:
                print("No tasks")
        elif args.json:
            print(json.dumps([record_to_dict(r, manager) for r in records], indent=2, ensure_ascii=False))
        else:
            print_table(records, manager)

    elif args.command == "sync":
        report = manager.reconcile()
        if not report.changed:
            print("✅ Index is in sync")
        else:
            if report.added:
                print(f"➕ Added to index: {', '.join(report.added)}")
            if report.removed:
                print(f"➖ Removed from index: {', '.join(report.removed)}")

    elif args.command == "migrate":
        ids = [args.id] if args.id else manager.content.list_ids()
        migrated = [task_id for task_id in ids if manager.content.migrate(task_id)]
        if migrated:
            print(f"✅ Migrated to JSON: {', '.join(migrated)}")
        else:
            print("Nothing to migrate")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args, extra = parser.parse_known_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if not args.command:
        parser.print_help()
        return 1
    logger.debug(f"Running '{args.command}' with field arguments {extra}")

    try:
        if args.command == "init":
            created, message = create_default_config(tasks_dir=args.tasks_dir)
            print(f"{'✅' if created else '⚠️'} {message}")
            return 0
        manager = TaskManager.from_config(args.config)
        return run_command(args, extra, manager)
    except HodError as e:
        report_error(e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
