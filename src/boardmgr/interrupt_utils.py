"""Utilities for handling KeyboardInterrupt during long-running steps.

Downloads and extractions may run on worker threads of the embedding service.
A KeyboardInterrupt caught there has to reach the main thread, otherwise the
process keeps running while the step is abandoned.
"""

import _thread
import logging


def handle_keyboard_interrupt_properly(ke: KeyboardInterrupt) -> None:
    """Propagate a KeyboardInterrupt to the main thread and re-raise it.

    Usage:
        try:
            downloader.download(url, dest)
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)

    Args:
        ke: The KeyboardInterrupt exception to handle

    Raises:
        KeyboardInterrupt: Always re-raises the exception after handling
    """
    logging.warning("Interrupted, stopping current operation")
    _thread.interrupt_main()
    raise ke
