"""
Operate the outreach queue from the command line.

Usage:
    python -m outreach.scripts.run_worker tick
    python -m outreach.scripts.run_worker tick --loop --interval 60
    python -m outreach.scripts.run_worker sweep
    python -m outreach.scripts.run_worker status
"""

import argparse
import json
import time

from dotenv import load_dotenv

load_dotenv()


def _tick(ctx, args) -> int:
    while True:
        result = ctx.dispatcher.tick()
        print(json.dumps(result.to_dict(), indent=2))
        if not args.loop:
            return 0 if result.ran else 1
        time.sleep(args.interval)


def _sweep(ctx, args) -> int:
    swept = ctx.dispatcher.sweep()
    print(f"Requeued {len(swept)} expired claims")
    for task in swept:
        print(f"  - task {task.id} ({task.type.value}) for {task.subject_id}: {task.status.value}")
    return 0


def _status(ctx, args) -> int:
    counts = ctx.task_store.counts_by_status()
    print(json.dumps({"counts": counts, "tick_lock": ctx.tick_lock.get_status()}, indent=2, default=str))
    return 0


def main(argv=None) -> int:
    from outreach import create_app, get_context
    from outreach.models import db

    parser = argparse.ArgumentParser(description="Outreach queue worker")
    sub = parser.add_subparsers(dest="command", required=True)

    tick = sub.add_parser("tick", help="Process due tasks once (or forever with --loop)")
    tick.add_argument("--loop", action="store_true", help="Keep ticking until interrupted")
    tick.add_argument("--interval", type=int, default=60, help="Seconds between ticks with --loop")
    tick.set_defaults(func=_tick)

    sweep = sub.add_parser("sweep", help="Requeue tasks whose claim lease expired")
    sweep.set_defaults(func=_sweep)

    status = sub.add_parser("status", help="Show task counts by status")
    status.set_defaults(func=_status)

    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        try:
            return args.func(get_context(app), args)
        except KeyboardInterrupt:
            print("\nStopped.")
            return 0
        finally:
            db.session.remove()


if __name__ == "__main__":
    raise SystemExit(main())
