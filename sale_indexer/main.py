"""Entry point for the sale event indexer (``sale-indexer`` console script)."""

import asyncio
import signal
import sys

from loguru import logger

from config.settings import settings
from sale_indexer.utils.logger import setup_logger
from sale_indexer.worker import check_required_settings, run_indexer


async def main() -> int:
    setup_logger(json_logs=settings.json_logs, level=settings.log_level)
    check_required_settings(settings)
    logger.info(f"Starting sale indexer (factory={settings.factory_address})")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    indexer = asyncio.create_task(run_indexer(settings), name="indexer")
    stopper = asyncio.create_task(stop.wait(), name="shutdown")
    await asyncio.wait({indexer, stopper}, return_when=asyncio.FIRST_COMPLETED)

    exit_code = 0
    if stopper.done():
        logger.info("Shutdown signal received, stopping loops")
        indexer.cancel()
    else:
        stopper.cancel()

    try:
        await indexer
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.exception(f"Indexer crashed: {e}")
        exit_code = 1

    logger.info("Shutdown complete")
    return exit_code


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
