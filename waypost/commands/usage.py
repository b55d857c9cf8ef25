"""
wp usage - Show command, token and time usage.

With --log-hours, adds hours to the budget tally.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.repository import FilesystemRepository
from waypost.lib.usage import UsageStats


def cmd_usage(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    usage = repo.load_usage() or UsageStats()

    if args.log_hours is not None:
        if args.log_hours <= 0:
            print("ERROR: --log-hours must be positive")
            return 2
        usage.record_logged_hours(args.log_hours)
        repo.save_usage(usage)
        print(f"Logged {args.log_hours:g}h (total {usage.logged_hours:g}h)")
        return 0

    print(f"Commands:     {usage.total_commands}")
    print(f"Last command: {usage.last_command_at or '-'}")
    print(f"Logged hours: {usage.logged_hours:g}")
    print(f"AI tokens:    {usage.total_tokens()}")
    for model, stats in sorted(usage.provider_stats.items()):
        print(f"  {model}: {stats.calls} call(s), {stats.input_tokens} in / {stats.output_tokens} out")
    return 0
