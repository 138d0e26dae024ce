import logging
from typing import Awaitable, Callable, List

logger = logging.getLogger(__name__)

Closer = Callable[[], Awaitable[None]]


class ViewLifecycle:
    """
    Teardown bookkeeping for one view.

    Collects the async closers of everything a view starts (subscriptions,
    polling timers) and tears all of them down together. ``is_open`` is
    the guard checked before applying the result of a request that may
    finish after teardown.
    """

    def __init__(self, name: str):
        self.name = name
        self._open = True
        self._closers: List[Closer] = []

    @property
    def is_open(self) -> bool:
        return self._open

    def add_closer(self, closer: Closer) -> None:
        self._closers.append(closer)

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        logger.info(f"Tearing down view {self.name}")

        closers, self._closers = self._closers, []
        for closer in reversed(closers):
            try:
                await closer()
            except Exception as e:
                logger.error(f"Teardown step failed for {self.name}: {e}", exc_info=True)
