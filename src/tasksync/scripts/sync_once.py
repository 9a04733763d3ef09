"""
Run outbox sync cycles from the command line.

Usage:
    python -m tasksync.scripts.sync_once           # one cycle
    python -m tasksync.scripts.sync_once --drain   # until the queue is empty

--drain stops early when a cycle fails at the transport level or resolves
nothing, so a dead remote can't spin the loop forever.
"""
import argparse
import asyncio
import json
import logging

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def _sync(drain: bool) -> int:
    from tasksync.config import get_settings
    from tasksync.db.engine import get_engine
    from tasksync.sync.engine import SyncEngine

    sync_engine = SyncEngine.from_settings(get_engine(), get_settings())
    logger.info("Outbox depth before sync: %d", sync_engine.queue_depth())

    total = 0
    while True:
        result = await sync_engine.process_once()
        print(json.dumps(result.model_dump(), indent=2))
        total += result.processed
        if result.error:
            logger.error("Sync cycle failed: %s", result.error)
            break
        if not drain or result.processed == 0 or sync_engine.queue_depth() == 0:
            break

    logger.info(
        "Done. %d entries processed, %d still queued.",
        total,
        sync_engine.queue_depth(),
    )
    return total


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Drain the tasksync outbox")
    parser.add_argument(
        "--drain",
        action="store_true",
        help="Keep running cycles until the outbox is empty",
    )
    args = parser.parse_args(argv)
    asyncio.run(_sync(args.drain))


if __name__ == "__main__":
    main()
