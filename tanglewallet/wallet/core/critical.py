# MIT License
# Copyright (c) 2025 Hashborn

import logging
import signal
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


@contextmanager
def critical_section(name: str = "critical section"):
    """
    Defers SIGINT until the enclosed unit of work is done.

    A deferred interrupt is re-raised through the previous handler when the
    block exits, so cancellation only ever happens between units. No-op
    outside the main thread.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    received = []

    def _defer(signum, frame):
        received.append(signum)
        logger.warning(f"Interrupt received during {name}, stopping once it is complete")

    previous = signal.signal(signal.SIGINT, _defer)
    if previous is None:
        previous = signal.SIG_DFL
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)
        if received:
            signal.raise_signal(signal.SIGINT)
