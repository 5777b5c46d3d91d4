"""
Command line entrypoint.

Usage:
    docvault serve --port 8000
    docvault ingest [--queue]
    docvault clean
    docvault recalc-wordcloud
    docvault reindex
    docvault worker
    docvault purge-jobs --older-than-hours 24
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import timedelta
from typing import List, Optional

from docvault.ingestion import IngressScheduler, IngressWatcher, JobStatus, JobType, RQJobQueue, WorkerConfig, build_services
from docvault.logging_config import setup_logging

logger = logging.getLogger("docvault.cli")

JOB_COMMANDS = {
    "ingest": (JobType.INGESTION, "Manual ingestion"),
    "clean": (JobType.CLEANUP, "Manual cleanup"),
    "recalc-wordcloud": (JobType.WORDCLOUD, "Manual word cloud recalculation"),
    "reindex": (JobType.REINDEX, "Manual search reindex"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docvault", description="Document ingestion and storage service")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with the ingress scheduler")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--no-scheduler", action="store_true", help="Do not sweep ingress on an interval")
    serve.add_argument("--no-watch", action="store_true", help="Do not watch ingress for new files")

    for name in JOB_COMMANDS:
        cmd = sub.add_parser(name, help=f"Run a {JOB_COMMANDS[name][0].value} job")
        cmd.add_argument("--queue", action="store_true", help="Enqueue on RQ instead of running inline")

    sub.add_parser("worker", help="Start an RQ worker for queued jobs")

    purge = sub.add_parser("purge-jobs", help="Delete finished jobs older than the given age")
    purge.add_argument("--older-than-hours", type=int, default=None)
    return parser


def _run_job_command(config: WorkerConfig, command: str, queue: bool) -> int:
    job_type, message = JOB_COMMANDS[command]
    services = build_services(config)
    job = services.runner.start(job_type, message=message)
    if queue:
        RQJobQueue(config.redis_url, config.queue_name).enqueue(job.id, config)
        print(json.dumps({"job_id": job.id, "status": "queued"}))
        return 0
    finished = services.runner.run(job.id)
    print(
        json.dumps(
            {"job_id": finished.id, "status": finished.status.value, "message": finished.message, "result": finished.result},
            indent=2,
        )
    )
    return 0 if finished.status == JobStatus.COMPLETED else 1


def _serve(config: WorkerConfig, args: argparse.Namespace) -> int:
    import uvicorn

    from api.app import app
    from api.dependencies import get_services

    services = get_services()
    scheduler = None
    watcher = None
    if not args.no_scheduler:
        scheduler = IngressScheduler(
            services.runner,
            services.tracker,
            interval=timedelta(minutes=max(1, config.ingress_interval_minutes)),
            retention=config.job_retention,
        )
        scheduler.start()
        if not args.no_watch:
            watcher = IngressWatcher(services.storage.paths.ingress_root, scheduler.trigger)
            watcher.start()
    try:
        uvicorn.run(app, host=args.host, port=args.port)
    finally:
        if watcher:
            watcher.stop()
        if scheduler:
            scheduler.stop()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = WorkerConfig.from_env()
    setup_logging(config.log_level, config.log_file)

    if args.command == "serve":
        return _serve(config, args)
    if args.command in JOB_COMMANDS:
        return _run_job_command(config, args.command, args.queue)
    if args.command == "worker":
        logger.info("Starting RQ worker on queue %s", config.queue_name)
        RQJobQueue(config.redis_url, config.queue_name).work()
        return 0
    if args.command == "purge-jobs":
        services = build_services(config)
        hours = args.older_than_hours if args.older_than_hours is not None else config.job_retention_hours
        removed = services.tracker.purge_older_than(timedelta(hours=hours))
        print(json.dumps({"deleted": removed}))
        return 0
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
