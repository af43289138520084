#!/usr/bin/env python3
"""Entry point to run the job agent.

    python run_agent.py serve                 # scheduler loop (auto-search, auto-apply)
    python run_agent.py search USER_ID        # one search with the user's saved query
    python run_agent.py apply USER_ID JOB_ID  # one application attempt
    python run_agent.py jobs USER_ID [--status discovered] [--min-score 70]
    python run_agent.py status                # registered tasks
    python run_agent.py run-task auto-search  # run a task now
    python run_agent.py --log-level DEBUG serve
"""
from __future__ import annotations

import argparse
import json
import sys

from autoapply.agent import build_agent
from autoapply.errors import AppError
from autoapply.log import configure_logging, get_logger

log = get_logger(__name__)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="run_agent", description="Autonomous job search and application agent")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR (default: $LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="run the scheduler until interrupted")

    search = sub.add_parser("search", help="search jobs for a user")
    search.add_argument("user_id")
    search.add_argument("--keywords", nargs="*", help="override the saved query keywords")

    apply = sub.add_parser("apply", help="apply to one job")
    apply.add_argument("user_id")
    apply.add_argument("job_id")

    jobs = sub.add_parser("jobs", help="list indexed jobs for a user")
    jobs.add_argument("user_id")
    jobs.add_argument("--status")
    jobs.add_argument("--min-score", type=int)
    jobs.add_argument("--platform")

    sub.add_parser("status", help="show scheduled tasks")

    run_task = sub.add_parser("run-task", help="run a scheduled task immediately")
    run_task.add_argument("name")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    log_file = configure_logging(args.log_level)
    if log_file is not None:
        log.debug("Writing logs to %s", log_file)
    agent = build_agent()

    try:
        if args.command == "serve":
            agent.serve()
        elif args.command == "search":
            query = agent.default_query(args.user_id)
            if args.keywords:
                query = query.model_copy(update={"keywords": args.keywords})
            result = agent.search(args.user_id, query)
            log.info("Search complete.")
            log.info("  Jobs found: %d (%d new)", result.total_results, result.new_jobs)
            for pr in result.platform_results:
                log.info("  %s: %d%s", pr.platform, pr.count, f" (error: {pr.error})" if pr.error else "")
            for job in result.jobs[:10]:
                log.info("  [%3d] %s @ %s", job.match_score, job.title, job.company)
        elif args.command == "apply":
            result = agent.apply(args.user_id, args.job_id)
            print(json.dumps(result.to_dict(), indent=2))
            return 0 if result.success else 2
        elif args.command == "jobs":
            rows = agent.list_jobs(
                args.user_id, status=args.status, min_score=args.min_score, platform=args.platform,
            )
            for row in rows:
                print(f"{row.match_score:3d}  {row.status:<10}  {row.id}  {row.title} @ {row.company}")
        elif args.command == "status":
            print(json.dumps(agent.scheduler_status(), indent=2))
        elif args.command == "run-task":
            agent.run_task(args.name)
    except AppError as exc:
        log.error("%s", exc.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
