"""
wp log - Show the audit journal.

Most recent first, like `git log --oneline`.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.journal import Journal
from waypost.lib.repository import FilesystemRepository
from waypost.lib.timeline import COLORS, format_event_oneline, parse_since


def cmd_log(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    if args.limit is not None and args.limit < 0:
        print(f"ERROR: --limit must be 0 or more, got {args.limit}")
        return 2

    since = None
    if args.since:
        since = parse_since(args.since)
        if since is None:
            print(f"ERROR: Invalid --since value: {args.since}")
            print("  Use: 1h, 1d, 1w, or ISO timestamp")
            return 2

    events = Journal(repo).get_timeline(since=since, limit=args.limit, task_id=args.task)
    if not events:
        print("No events found.")
        return 0

    colorize = not args.no_color
    dim = COLORS["dim"] if colorize else ""
    reset = COLORS["reset"] if colorize else ""

    if args.reverse:
        events = list(reversed(events))
    for event in events:
        print(format_event_oneline(event, colorize=colorize))
        if args.verbose:
            for key, value in event.metadata.items():
                if value:
                    print(f"         {dim}{key}: {value}{reset}")

    print()
    print(f"{dim}{len(events)} event(s){reset}")
    return 0
