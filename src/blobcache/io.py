"""IO collaborators for emitting cache trace messages.

The cache never prints or logs hit/miss traces directly; it hands them to an
``IOInterface`` so callers decide where (and whether) they go.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from rich.console import Console
from rich.markup import escape


class IOInterface(ABC):
    """Sink for debug-level trace messages."""

    @abstractmethod
    def is_debug(self) -> bool:
        """Whether debug traces should be emitted at all."""
        pass

    @abstractmethod
    def write(self, message: str) -> None:
        """Emit a single trace message."""
        pass


class NullIO(IOInterface):
    """Discards everything."""

    def is_debug(self) -> bool:
        return False

    def write(self, message: str) -> None:
        pass


class LoggingIO(IOInterface):
    """Forwards traces to a stdlib logger at DEBUG level.

    Args:
        logger: Logger to use (defaults to ``blobcache.cache``)
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("blobcache.cache")

    def is_debug(self) -> bool:
        return self.logger.isEnabledFor(logging.DEBUG)

    def write(self, message: str) -> None:
        self.logger.debug(message)


class ConsoleIO(IOInterface):
    """Prints traces to a Rich console when verbose.

    Args:
        console: Console to print to (defaults to stderr)
        verbose: Enable trace output
    """

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console(stderr=True)
        self.verbose = verbose

    def is_debug(self) -> bool:
        return self.verbose

    def write(self, message: str) -> None:
        self.console.print(
            f"[dim]{escape(message)}[/dim]", highlight=False, soft_wrap=True
        )
