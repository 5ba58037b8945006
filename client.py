"""
Chat sync client - headless runner.

Connects as the user configured in the environment (CHAT_USER_ID, ...),
keeps the conversation list in sync and logs every change until
interrupted. A presentation layer embeds ``SyncEngine`` the same way.
"""

import asyncio
import signal
import sys
from typing import Optional

from loguru import logger

from chat.engine import SyncEngine
from chat.factory import create_engine
from config.logging_config import configure_logging
from config.settings import get_settings

_SHUTDOWN_TIMEOUT_S = 5.0


async def _best_effort(
    name: str, awaitable, timeout_s: float = _SHUTDOWN_TIMEOUT_S
) -> None:
    """Run a shutdown step with timeout; never raise to callers."""
    try:
        await asyncio.wait_for(awaitable, timeout=timeout_s)
    except TimeoutError:
        logger.warning(f"Shutdown step timed out: {name} ({timeout_s}s)")
    except Exception as e:
        logger.warning(f"Shutdown step failed: {name}: {type(e).__name__}: {e}")


def _log_state(engine: SyncEngine) -> None:
    logger.info(
        f"{engine.title} | conversations={len(engine.conversations)} "
        f"unread={engine.total_unread} active={engine.active_peer or '-'} "
        f"history={len(engine.messages)}"
    )


async def run(stop: Optional[asyncio.Event] = None) -> int:
    """Run until ``stop`` is set (SIGINT/SIGTERM when not given)."""
    settings = get_settings()
    configure_logging(settings.log_file, settings.log_level)

    try:
        engine = create_engine(settings)
    except ValueError as e:
        logger.error(f"Cannot start chat client: {e}")
        return 1

    engine.add_change_listener(_log_state)
    loop = asyncio.get_running_loop()
    installed = []
    if stop is None:
        stop = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
                installed.append(sig)
            except NotImplementedError:
                # Windows event loops
                pass

    logger.info("Starting chat sync client...")
    # The first open may retry for a long time; a stop request must not wait for it
    starting = asyncio.create_task(engine.start())
    stopping = asyncio.create_task(stop.wait())
    exit_code = 0
    try:
        await asyncio.wait({starting, stopping}, return_when=asyncio.FIRST_COMPLETED)
        if starting.done() and not starting.result():
            logger.error("Could not open the chat channel; giving up")
            exit_code = 1
        else:
            await stopping
    finally:
        logger.info("Shutting down chat sync client...")
        for sig in installed:
            loop.remove_signal_handler(sig)
        stopping.cancel()
        await _best_effort("engine.dispose", engine.dispose())
        # dispose() aborts a pending open, which then returns False
        await _best_effort("engine.start", starting)
    return exit_code


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
