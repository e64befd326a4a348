from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterator, Optional, Union

from ..utils.logging import setup_logger
from .retry_orchestrator import RetryOrchestrator

logger = setup_logger(__name__)


class TempResourceSet:
    """Paths owned by a single bill run, released exactly once when it ends"""

    def __init__(self, orchestrator: Optional[RetryOrchestrator] = None):
        self._orchestrator = orchestrator
        self._paths: dict[str, None] = {}

    def register(self, *paths: Union[str, Path]) -> None:
        for path in paths:
            self._paths[str(path)] = None

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def cleanup(self) -> int:
        """Delete every registered path. Returns how many deletions failed."""
        failures = 0
        for raw_path in list(self._paths):
            path = Path(raw_path)
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink()
                logger.debug("Temporary resource removed", extra={"path": raw_path})
            except OSError as error:
                failures += 1
                if self._orchestrator is not None:
                    self._orchestrator.log_only(error, {"file_path": raw_path})
                else:
                    logger.error("Failed to remove temporary resource", extra={"path": raw_path, "error": str(error)})
        self._paths.clear()
        return failures
