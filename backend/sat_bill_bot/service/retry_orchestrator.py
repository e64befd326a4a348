from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..core.config import ConfigurationProvider
from ..schemas.bot_config import Retries
from ..utils.logging import setup_logger
from .errors import RetryExhaustedError

logger = setup_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FailureLogEntry:
    timestamp: datetime
    error: BaseException
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "error_type": type(self.error).__name__,
            "error": str(self.error),
            "context": self.context,
        }


class RetryOrchestrator:
    """Attempt, log, back off and retry, then escalate.

    Also keeps the process-wide audit trail of failures. The trail is only an
    observability side effect; it never changes control flow.
    """

    def __init__(
        self,
        config: ConfigurationProvider,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._config = config
        self._sleep = sleep
        self._errors: list[FailureLogEntry] = []
        self._lock = threading.Lock()

    async def run(
        self,
        action: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        retries: Optional[Retries] = None,
    ) -> T:
        """Run ``action`` until it succeeds or ``max_attempts`` attempts failed.

        Between attempts ``i`` and ``i + 1`` (zero-indexed) it waits
        ``base_delay_ms * 2 ** i`` milliseconds. Callers holding a configuration
        snapshot pass its ``retries`` so a later update cannot change their backoff.
        """
        if retries is None:
            retries = self._config.get().retries
        if max_attempts is None:
            max_attempts = retries.max_attempts
        max_attempts = max(1, max_attempts)

        for attempt in range(max_attempts):
            try:
                return await action()
            except Exception as error:
                self.log_only(error, {**(context or {}), "attempt": attempt + 1, "max_attempts": max_attempts})

                if attempt == max_attempts - 1:
                    raise RetryExhaustedError(max_attempts, error) from error

                delay_ms = retries.base_delay_ms * 2 ** attempt
                logger.info(
                    "Retrying after backoff",
                    extra={"attempt": attempt + 1, "max_attempts": max_attempts, "delay_ms": delay_ms},
                )
                await self._sleep(delay_ms / 1000)

    def log_only(self, error: BaseException, context: Optional[dict[str, Any]] = None) -> None:
        entry = FailureLogEntry(
            timestamp=datetime.now(timezone.utc),
            error=error,
            context=dict(context or {}),
        )
        with self._lock:
            self._errors.append(entry)

        logger.error(
            str(error),
            extra={"error_type": type(error).__name__, "context": entry.context},
        )

    def errors(self) -> tuple[FailureLogEntry, ...]:
        with self._lock:
            return tuple(self._errors)

    def reset(self) -> None:
        with self._lock:
            self._errors = []
