"""
wp forecast - Velocity, trend and estimated completion.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.repository import FilesystemRepository
from waypost.workflow.engine import Coordinator


def cmd_forecast(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    result = Coordinator(repo, config).forecast()

    print(f"Tasks:     {result.completed}/{result.total} complete, {result.remaining} remaining")
    print(f"Velocity:  {result.velocity:.2f} tasks/day")
    windows = ", ".join(f"{w}d={v:.2f}" for w, v in result.trend.window_velocities.items())
    print(f"Trend:     {result.trend.direction.value} (slope {result.trend.slope:+.2f}, "
          f"confidence {result.trend.confidence:.2f}) [{windows}]")

    if result.remaining == 0:
        print("Estimate:  all tasks complete")
    elif result.estimated_days is None:
        print("Estimate:  unknown (no completions in the velocity window)")
    else:
        ci = result.interval
        print(f"Estimate:  {result.estimated_days} day(s), around {result.completion_date}")
        print(f"Range:     {ci.low:.1f} - {ci.high:.1f} days")

    if result.stats and args.verbose:
        s = result.stats
        print(f"Daily:     mean {s.mean:.2f}, median {s.median:.1f}, stddev {s.stddev:.2f}, "
              f"min {s.min}, max {s.max} over {s.days} days")

    if args.burndown:
        print()
        print("Burndown:")
        for point in result.burndown:
            kind = "projected" if point.is_projected else "actual"
            print(f"  {point.date}  {point.remaining:4d}  {kind}")
    return 0
