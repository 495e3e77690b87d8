"""Polling file watcher that hot-reloads flag definitions."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

from qcfl.core.config import get_settings
from qcfl.core.errors import ConfigurationError
from qcfl.core.feature_flags.client import FeatureFlagClient

logger = logging.getLogger(__name__)


class FlagFileWatcher:
    """Reload a client whenever its config file's mtime changes."""

    def __init__(
        self,
        client: FeatureFlagClient,
        path: Optional[Union[str, Path]] = None,
        interval: Optional[float] = None,
    ):
        path = path or client.config_path
        if path is None:
            raise ValueError("FlagFileWatcher needs a config path")
        self.client = client
        self.path = Path(path)
        self.interval = interval if interval is not None else get_settings().FEATURE_FLAG_WATCH_INTERVAL
        self.reload_count = 0
        self.failure_count = 0
        self._last_modified: Optional[float] = self._mtime()
        self._task: Optional[asyncio.Task] = None

    def _mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except FileNotFoundError:
            return None

    def check(self) -> bool:
        """Reload if the file changed since the last check.

        Returns True when a new snapshot was published. A file that fails to
        load leaves the current snapshot in place.
        """
        current = self._mtime()
        if current is None or current == self._last_modified:
            return False
        self._last_modified = current

        try:
            self.client.reload_from_file(self.path)
        except ConfigurationError as e:
            self.failure_count += 1
            logger.error(f"Keeping previous feature flags, reload failed: {e}")
            return False

        self.reload_count += 1
        return True

    async def run(self) -> None:
        """Poll until cancelled."""
        while True:
            try:
                await asyncio.sleep(self.interval)
                self.check()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"File watch error: {e}")

    def start(self) -> asyncio.Task:
        """Start polling on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
            logger.debug(f"Watching feature flag file: {self.path}")
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


__all__ = ["FlagFileWatcher"]
