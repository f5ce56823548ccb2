#!/usr/bin/env python3
"""
KW OS CLI - tasks, routines and sync from the terminal.
"""

import logging
import os
import sys

from lib import config, queries
from lib.errors import BadRequestError, NotFoundError, ServiceError
from lib.integrations import GoogleAuth
from lib.items import ItemService
from lib.models import format_task_id, parse_task_id
from lib.organizations import OrganizationService
from lib.people import PeopleService
from lib.projects import ProjectService
from lib.routine_service import RoutineService
from lib.state_store import get_store
from lib.sync_service import SyncService

logger = logging.getLogger(__name__)

PRIORITY_LABELS = {1: "P1", 2: "P2", 3: "P3", 4: "P4"}


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def print_table(headers: list, rows: list, widths: list = None):
    """Print a simple table."""
    if not rows:
        print("  (none)")
        return
    if not widths:
        widths = [max(len(str(row[i])) for row in [headers] + rows) for i in range(len(headers))]

    header_str = " │ ".join(str(h).ljust(w) for h, w in zip(headers, widths, strict=False))
    print(header_str)
    print("─" * len(header_str))

    for row in rows:
        print(" │ ".join(str(c)[:w].ljust(w) for c, w in zip(row, widths, strict=False)))


def pop_option(args: list, name: str, default: str | None = None) -> str | None:
    """Remove ``--name value`` from args and return the value."""
    if name not in args:
        return default
    index = args.index(name)
    if index + 1 >= len(args):
        raise BadRequestError(f"{name} needs a value")
    value = args[index + 1]
    del args[index : index + 2]
    return value


def pop_flag(args: list, name: str) -> bool:
    if name in args:
        args.remove(name)
        return True
    return False


def item_rows(items: list[dict]) -> list[list]:
    return [
        [
            item["display_id"],
            PRIORITY_LABELS.get(item.get("priority"), "-"),
            item["status"],
            item["title"],
            item.get("due_date") or "-",
            item.get("owner_name") or "-",
            item.get("project_full_path") or "-",
        ]
        for item in items
    ]


def print_items(items: list[dict]):
    print_table(["ID", "Pri", "Status", "Title", "Due", "Owner", "Project"], item_rows(items), [7, 3, 11, 40, 10, 14, 24])


def _usage(text: str) -> None:
    print(f"Usage: {text}")


# ============================================================
# Items
# ============================================================


def cmd_tasks(args, conn):
    """List open tasks with optional filters."""
    status = pop_option(args, "--status")
    result = ItemService(conn).list_items(
        status=status,
        item_type=pop_option(args, "--type", "task"),
        owner_name=pop_option(args, "--owner"),
        project_slug=pop_option(args, "--project"),
        org_slug=pop_option(args, "--org"),
        include_completed=pop_flag(args, "--all"),
        limit=int(pop_option(args, "--limit", "50")),
    )
    print_header(f"TASKS ({result['total']})")
    print_items(result["items"])


def cmd_show(args, conn):
    """Show one item with its history."""
    if not args:
        _usage("show <T-id>")
        return
    item = ItemService(conn).get(parse_task_id(args[0]))

    print_header(f"{item['display_id']}  {item['title']}")
    print(f"  Type:     {item['item_type']}")
    print(f"  Status:   {item['status']}")
    print(f"  Priority: {PRIORITY_LABELS.get(item.get('priority'), '-')}")
    print(f"  Due:      {item.get('due_date') or '-'}")
    print(f"  Owner:    {item.get('owner_name') or '-'}")
    print(f"  Project:  {item.get('project_full_path') or '-'}")
    if item.get("description"):
        print(f"\n{item['description']}")

    if item["blockers"]:
        print("\nBLOCKED BY")
        for b in item["blockers"]:
            print(f"  {b['display_id']}  {b['title']} ({b['status']})")
    if item["subtasks"]:
        print("\nSUBTASKS")
        for s in item["subtasks"]:
            mark = "✓" if s["status"] == "complete" else " "
            print(f"  [{mark}] {s['display_id']}  {s['title']}")
    pending = [c for c in item["check_ins"] if not c["completed"]]
    if pending:
        print("\nCHECK-INS")
        for c in pending:
            print(f"  {c['date']}  {c.get('note') or ''}")
    if item["updates"]:
        print("\nHISTORY")
        for u in item["updates"][:10]:
            print(f"  {u['created_at'][:16].replace('T', ' ')}  {u['update_type']:<16} {u['note']}")


def cmd_add(args, conn):
    """Create a task."""
    project = pop_option(args, "--project")
    priority = pop_option(args, "--priority")
    due = pop_option(args, "--due")
    owner = pop_option(args, "--owner")
    if not args:
        _usage("add <title> [--project slug] [--priority 1-4] [--due YYYY-MM-DD] [--owner name]")
        return

    data = {"title": " ".join(args), "due_date": due, "priority": int(priority) if priority else None}
    if project:
        data["project_id"] = ProjectService(conn).get(project)["id"]
    if owner:
        person = PeopleService(conn).find_by_name(owner)
        if person is None:
            raise NotFoundError(f"Person '{owner}' not found")
        data["owner_id"] = person["id"]

    item = ItemService(conn).create(data)
    print(f"✓ Created {item['display_id']}: {item['title']}")


def cmd_done(args, conn):
    """Complete an item."""
    if not args:
        _usage("done <T-id> [note]")
        return
    result = ItemService(conn).complete(parse_task_id(args[0]), note=" ".join(args[1:]) or None)
    item = result["item"]
    print(f"✓ Completed {item['display_id']}: {item['title']}")
    for unblocked in result["unblocked_tasks"]:
        print(f"  ↳ unblocked {unblocked['display_id']}: {unblocked['title']}")
    source = result["markdown_sync"]
    if source["synced"] and source["source_type"]:
        print(f"  ↳ {source['message']}")


def cmd_status(args, conn):
    """Change an item's status."""
    if len(args) < 2:
        _usage("status <T-id> <pending|in_progress|blocked|complete|cancelled>")
        return
    item = ItemService(conn).update(parse_task_id(args[0]), {"status": args[1]})
    print(f"✓ {item['display_id']} is now {item['status']}")


def cmd_delete(args, conn):
    if not args:
        _usage("delete <T-id>")
        return
    result = ItemService(conn).delete(parse_task_id(args[0]))
    print(f"✓ Deleted {result['display_id']}")


def cmd_restore(args, conn):
    if not args:
        _usage("restore <T-id>")
        return
    item = ItemService(conn).restore(parse_task_id(args[0]))
    print(f"✓ Restored {item['display_id']}: {item['title']}")


def cmd_note(args, conn):
    """Append a note to an item."""
    if len(args) < 2:
        _usage("note <T-id> <text>")
        return
    ItemService(conn).add_note(parse_task_id(args[0]), " ".join(args[1:]))
    print(f"✓ Note added to {format_task_id(parse_task_id(args[0]))}")


def cmd_block(args, conn):
    if len(args) < 2:
        _usage("block <T-id> <blocker T-id>")
        return
    result = ItemService(conn).add_blocker(parse_task_id(args[0]), parse_task_id(args[1]))
    print(f"✓ {result['item_display_id']} blocked by {result['blocker_display_id']}")


def cmd_unblock(args, conn):
    if len(args) < 2:
        _usage("unblock <T-id> <blocker T-id>")
        return
    item_id, blocker_id = parse_task_id(args[0]), parse_task_id(args[1])
    ItemService(conn).remove_blocker(item_id, blocker_id)
    print(f"✓ {format_task_id(blocker_id)} no longer blocks {format_task_id(item_id)}")


# ============================================================
# Views
# ============================================================


def cmd_today(args, conn):
    """Tasks due today, plus routines due today."""
    result = queries.due_today(conn, owner_name=pop_option(args, "--owner"))
    print_header(f"TODAY: {result['date']}")
    print_items(result["items"])

    routines = RoutineService(conn).due()
    if routines["pending"]:
        print("\nROUTINES")
        for r in routines["pending"]:
            print(f"  [ ] {r['id']:>4}  {r['title']}")


def cmd_overdue(args, conn):
    result = queries.overdue(conn, owner_name=pop_option(args, "--owner"))
    print_header(f"OVERDUE ({result['count']})")
    print_items(result["items"])


def cmd_waiting(args, conn):
    result = queries.waiting(conn)
    print_header(f"WAITING ON ({result['total']})")
    if not result["by_person"]:
        print("  (none)")
    for group in result["by_person"]:
        print(f"\n  {group['person']['name']}")
        for item in group["items"]:
            print(f"    {item['display_id']:<7} {item['title']}")


def cmd_search(args, conn):
    if not args:
        _usage("search <query> [--all]")
        return
    include_completed = pop_flag(args, "--all")
    result = queries.search(conn, " ".join(args), include_completed=include_completed)
    print_header(f"SEARCH: {result['query']} ({result['count']})")
    print_items(result["items"])


def cmd_dashboard(args, conn):
    counts = queries.dashboard(conn, owner_name=pop_option(args, "--owner"))
    print_header("DASHBOARD")
    print(f"  Open tasks:     {counts['total']}")
    print(f"  Overdue:        {counts['overdue']}")
    print(f"  Due today:      {counts['due_today']}")
    print(f"  High priority:  {counts['high_priority']}")
    print(f"  Blocked:        {counts['blocked']}")


# ============================================================
# Routines
# ============================================================


def cmd_routines(args, conn):
    result = RoutineService(conn).list_all()
    print_header(f"ROUTINES ({result['count']})")
    print_table(
        ["ID", "Title", "Rule", "Next due", "Today"],
        [
            [r["id"], r["title"], r["recurrence_rule"], r["next_due"], "✓" if r["is_due_today"] else ""]
            for r in result["routines"]
        ],
        [5, 40, 12, 10, 5],
    )


def cmd_routine_done(args, conn):
    if not args:
        _usage("routine-done <id> [YYYY-MM-DD]")
        return
    result = RoutineService(conn).complete(int(args[0]), args[1] if len(args) > 1 else None)
    if result["already_completed"]:
        print(f"Routine {result['routine_id']} already completed for {result['date']}")
    else:
        print(f"✓ Routine {result['routine_id']} completed for {result['date']}")


def cmd_routine_skip(args, conn):
    if not args:
        _usage("routine-skip <id> [YYYY-MM-DD]")
        return
    result = RoutineService(conn).skip(int(args[0]), args[1] if len(args) > 1 else None)
    if result["already_skipped"]:
        print(f"Routine {result['routine_id']} already skipped for {result['date']}")
    else:
        print(f"✓ Routine {result['routine_id']} skipped for {result['date']}")


# ============================================================
# Projects / people / orgs
# ============================================================


def cmd_projects(args, conn):
    result = ProjectService(conn).list_all(org=args[0] if args else None, limit=500)
    print_header(f"PROJECTS ({result['total']})")
    print_table(
        ["ID", "Org", "Path", "Name", "Status"],
        [[p["id"], p["org"], p["full_path"], p["name"], p.get("status") or "-"] for p in result["projects"]],
        [5, 14, 30, 30, 10],
    )


def cmd_people(args, conn):
    result = PeopleService(conn).list_all(search=args[0] if args else None, limit=500)
    print_header(f"PEOPLE ({result['total']})")
    print_table(
        ["ID", "Name", "Email", "Owns", "Waiting"],
        [
            [p["id"], p["name"], p.get("email") or "-", p["owned_tasks"], p["waiting_on_tasks"]]
            for p in result["people"]
        ],
        [5, 24, 30, 5, 7],
    )


def cmd_orgs(args, conn):
    result = OrganizationService(conn).list_all()
    print_header(f"ORGANIZATIONS ({result['count']})")
    print_table(
        ["Slug", "Name", "Short", "Color"],
        [[o["slug"], o["name"], o.get("short_name") or "-", o.get("color") or "-"] for o in result["organizations"]],
    )


# ============================================================
# Sync
# ============================================================


def _print_sync(name: str, result: dict):
    counts = ", ".join(f"{k} {result[k]}" for k in ("created", "updated", "skipped") if k in result)
    print(f"  ✓ {name}: {counts}")
    for error in result.get("errors", []):
        print(f"    ✗ {error}")
    for conflict in result.get("conflicts", []):
        print(f"    ! conflict: {conflict}")


def cmd_sync(args, conn):
    """Sync the knowledge base into the database."""
    target = args[0] if args else "all"
    service = SyncService(conn)
    orgs = config.configured_orgs()

    if target == "all":
        for name, result in service.all(orgs).items():
            _print_sync(name, result)
    elif target == "workstreams":
        _print_sync("workstreams", service.filesystem_to_db(orgs))
    elif target == "projects":
        _print_sync("projects", service.projects(orgs))
    elif target == "meetings":
        _print_sync("meetings", service.meetings())
    elif target == "conflicts":
        result = service.conflicts()
        print_header(f"CONFLICTS ({result['count']})")
        for conflict in result["conflicts"]:
            print(f"  {format_task_id(conflict['item_id'])}  {conflict['file_path']}")
    else:
        _usage("sync [all|workstreams|projects|meetings|conflicts]")


# ============================================================
# Server / auth
# ============================================================


def cmd_serve(args):
    from api.server import main as serve

    host = pop_option(args, "--host")
    port = pop_option(args, "--port")
    serve(host=host, port=int(port) if port else None)


def cmd_google_auth(args):
    """Print the consent URL, or save tokens for a consent code."""
    auth = GoogleAuth()
    if args:
        result = auth.exchange_code(args[0])
        print(f"✓ Tokens saved to {result['token_path']}")
        return
    print("Open this URL, approve access, then run: google-auth <code>\n")
    print(auth.get_auth_url())


def cmd_help(args):
    """Show help."""
    print_header("KW OS CLI")
    print("""
TASKS:
  tasks [--status s] [--project p] [--owner o] [--org o] [--all]
  show <T-id>            Show an item with history
  add <title> [--project p] [--priority n] [--due date] [--owner name]
  done <T-id> [note]     Complete an item
  status <T-id> <s>      Change status
  delete <T-id>          Soft-delete an item
  restore <T-id>         Restore a deleted item
  note <T-id> <text>     Add a note
  block <T-id> <by>      Mark <T-id> blocked by <by>
  unblock <T-id> <by>    Remove a blocker

VIEWS:
  today | overdue | waiting | dashboard
  search <query> [--all]

ROUTINES:
  routines               List routines
  routine-done <id> [date]
  routine-skip <id> [date]

KNOWLEDGE BASE:
  projects [org] | people [search] | orgs
  sync [all|workstreams|projects|meetings|conflicts]

SERVER:
  serve [--host h] [--port p]
  google-auth [code]     Connect Gmail and Calendar
  help                   Show this help

Add -v for debug logging.
""")


COMMANDS = {
    "tasks": cmd_tasks,
    "ls": cmd_tasks,
    "show": cmd_show,
    "add": cmd_add,
    "done": cmd_done,
    "status": cmd_status,
    "delete": cmd_delete,
    "restore": cmd_restore,
    "note": cmd_note,
    "block": cmd_block,
    "unblock": cmd_unblock,
    "today": cmd_today,
    "t": cmd_today,
    "overdue": cmd_overdue,
    "waiting": cmd_waiting,
    "search": cmd_search,
    "dashboard": cmd_dashboard,
    "d": cmd_dashboard,
    "routines": cmd_routines,
    "routine-done": cmd_routine_done,
    "routine-skip": cmd_routine_skip,
    "projects": cmd_projects,
    "people": cmd_people,
    "orgs": cmd_orgs,
    "sync": cmd_sync,
    "s": cmd_sync,
}

NO_DB_COMMANDS = {
    "serve": cmd_serve,
    "google-auth": cmd_google_auth,
    "help": cmd_help,
    "h": cmd_help,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = pop_flag(args, "-v")
    if verbose or os.environ.get("KW_OS_LOG_LEVEL"):
        logging.basicConfig(level=logging.DEBUG if verbose else config.LOG_LEVEL.upper())

    if not args:
        cmd_help([])
        return 0

    cmd, rest = args[0], args[1:]
    try:
        if cmd in NO_DB_COMMANDS:
            NO_DB_COMMANDS[cmd](rest)
        elif cmd in COMMANDS:
            with get_store().connection() as conn:
                COMMANDS[cmd](rest, conn)
        else:
            print(f"Unknown command: {cmd}")
            print("Run 'help' for available commands.")
            return 2
    except ServiceError as e:
        print(f"✗ {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
