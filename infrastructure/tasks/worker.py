"""Convenience entry point for running a Celery worker.

Deployments normally use the celery CLI
(``celery -A infrastructure.tasks worker``); this keeps a Procfile-style
runner available.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(argv=["worker", "--loglevel=INFO", "--hostname=worker@%h"])


if __name__ == "__main__":
    main()
