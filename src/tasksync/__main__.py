"""
Main entrypoint.

Usage:
    python -m tasksync                 # serves the API (+ interval sync job)
    python -m tasksync sync [--drain]  # runs sync cycles and exits
"""
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_sync(argv) -> None:
    from tasksync.scripts.sync_once import main
    main(argv)


def _run_api() -> None:
    import uvicorn

    from tasksync.config import get_settings

    settings = get_settings()
    logger.info("Starting API on %s:%d", settings.api_host, settings.api_port)
    uvicorn.run("tasksync.api.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    # Dispatch on first argument: `python -m tasksync sync` or just `python -m tasksync`
    if len(sys.argv) > 1 and sys.argv[1] == "sync":
        _run_sync(sys.argv[2:])
    else:
        _run_api()
