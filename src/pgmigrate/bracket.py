"""
Destination server tuning bracket.

Bulk loading is much faster with durability features switched off, so the
destination server is reconfigured for the duration of the load and then
restored to its defaults. The settings are server-wide and persistent
(ALTER SYSTEM), which makes the revert mandatory: a run that fails or is
cancelled half-way must not leave the destination with fsync=off.

SettingsBracket is an async context manager; the revert runs on every
exit path of the `async with` block.

Example:
    >>> bracket = SettingsBracket(server, config.destination, config.tuning_settings)
    >>> async with bracket:
    ...     await restore_everything()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from types import TracebackType

from pgmigrate.adapters.interface import ServerAdapter
from pgmigrate.config import ConnectionParams
from pgmigrate.observability import ATTR_SETTING_COUNT, Tracer, create_tracer

logger = logging.getLogger(__name__)


class SettingsBracket:
    """
    Paired apply/revert of destination server settings.

    apply() and revert() each take effect at most once per bracket;
    repeated calls are no-ops. revert() resets only the keys that were
    actually applied, so a partially failed apply is undone precisely.

    Attributes:
        settings: (key, value) pairs applied on entry
        enabled: When False, entering and leaving the bracket does nothing
    """

    def __init__(
        self,
        server: ServerAdapter,
        params: ConnectionParams,
        settings: Sequence[tuple[str, str]],
        *,
        enabled: bool = True,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._server = server
        self._params = params
        self.settings = tuple(settings)
        self.enabled = enabled
        self._applied: list[str] = []
        self._apply_started = False
        self._reverted = False

    @property
    def applied_keys(self) -> list[str]:
        """Keys currently overridden by this bracket."""
        return list(self._applied)

    @property
    def active(self) -> bool:
        return bool(self._applied) and not self._reverted

    async def apply(self) -> None:
        """
        Override every setting, then reload the server configuration.

        Raises:
            ConnectivityError, ExternalOperationError: If a setting cannot
                be changed. Keys set before the failure stay applied until
                revert() runs.
        """
        if not self.enabled or self._apply_started:
            return
        self._apply_started = True

        with self._tracer.span(
            "pgmigrate.bracket.apply", {ATTR_SETTING_COUNT: len(self.settings)}
        ):
            for key, value in self.settings:
                logger.info("Setting %s = %s on the destination", key, value)
                await self._server.set_setting(self._params, key, value)
                self._applied.append(key)
            await self._server.reload_configuration(self._params)
        logger.info("Applied %d destination settings", len(self._applied))

    async def revert(self) -> None:
        """Reset every applied setting to the server default, then reload."""
        if not self.enabled or self._reverted or not self._apply_started:
            return
        self._reverted = True

        with self._tracer.span(
            "pgmigrate.bracket.revert", {ATTR_SETTING_COUNT: len(self._applied)}
        ):
            for key in list(self._applied):
                logger.info("Resetting %s on the destination", key)
                await self._server.reset_setting(self._params, key)
                self._applied.remove(key)
            await self._server.reload_configuration(self._params)
        logger.info("Destination settings reverted")

    async def __aenter__(self) -> SettingsBracket:
        try:
            await self.apply()
        except BaseException:
            await self._revert_after_failure()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            await self.revert()
        else:
            await self._revert_after_failure()

    async def _revert_after_failure(self) -> None:
        # Never replaces the exception that ended the run
        try:
            await self.revert()
        except Exception:
            logger.exception(
                "Failed to revert destination settings %s; reset them manually",
                ", ".join(self._applied),
            )


__all__ = ["SettingsBracket"]
