"""Engine facade: wire a rule store to the transport interceptors.

The ``Interposer`` owns the installation lifecycle.  ``install()`` puts the
fetch and XHR wrappers in place and schedules a deferred check; the check
re-asserts wrappers that other code has replaced since, and installs the
third-party shims whose client library has been imported in the meantime.
"""

import asyncio
import logging
from pathlib import Path

from interpose.adapters import (
    AiohttpInterceptor,
    FetchInterceptor,
    Interceptor,
    RequestsInterceptor,
    XHRInterceptor,
)
from interpose.config import EngineSettings, load_rules_file
from interpose.engine.reporter import ActivityLog
from interpose.engine.state import InterceptionState, get_state
from interpose.rules.store import RuleStore
from interpose.utils.debug import set_debug_enabled

logger = logging.getLogger(__name__)


class Interposer:
    """Installs interception over the supported transports.

    Args:
        store: Rule source.  When given, the interposer subscribes to it and
            every change is pushed into the state before the next call.
        state: Shared state; defaults to the process-wide one.
        settings: Engine settings; defaults to ``EngineSettings()``.
    """

    def __init__(
        self,
        store: RuleStore | None = None,
        state: InterceptionState | None = None,
        settings: EngineSettings | None = None,
    ):
        self.settings = settings or EngineSettings()
        self.state = state if state is not None else get_state()
        self.store = store
        self.interceptors: list[Interceptor] = [
            FetchInterceptor(self.state),
            XHRInterceptor(self.state),
        ]
        self.shims: list[Interceptor] = [
            RequestsInterceptor(self.state),
            AiohttpInterceptor(self.state),
        ]
        self._reassert_handle: asyncio.TimerHandle | None = None
        if store is not None:
            store.subscribe(self._on_store_change)
            self._pull()

    @classmethod
    def from_config(cls, project_dir: Path | None = None) -> "Interposer":
        """Build an interposer from ``EngineSettings.load()`` and its rules file."""
        settings = EngineSettings.load(project_dir)
        set_debug_enabled(settings.debug)
        store = RuleStore()
        if settings.rules_file is not None:
            rule_file = load_rules_file(settings.rules_file)
            store = RuleStore(rule_file.rules, enabled=rule_file.enabled)
        state = get_state()
        reporter = state.reporter
        if isinstance(reporter, ActivityLog) and reporter.max_logs != settings.max_logs:
            state.reporter = ActivityLog(settings.max_logs)
        return cls(store=store, state=state, settings=settings)

    @property
    def installed(self) -> bool:
        return any(interceptor.installed for interceptor in self.interceptors)

    def install(self) -> bool:
        """Install the interceptors.

        Does nothing and returns False while interception is disabled or
        there are no rules.  Calling it again only re-asserts the wrappers.
        """
        if not self.state.active:
            logger.debug("Interception inactive, nothing installed")
            return False
        for interceptor in self.interceptors:
            interceptor.install()
        logger.info("Interception installed (%d rules)", len(self.state.rules))
        self._schedule_reassert()
        return True

    def refresh(self) -> bool:
        """Pull the store's rules into the state; install if now active."""
        self._pull()
        if self.state.active and not self.installed:
            return self.install()
        return self.state.active

    def reassert(self) -> list[str]:
        """Re-apply displaced wrappers and install newly available shims.

        Returns the keys of the wrappers that had to be put back.
        """
        self._reassert_handle = None
        if not self.installed:
            return []
        restored: list[str] = []
        for interceptor in (*self.interceptors, *self.shims):
            displaced = interceptor.displaced()
            if displaced:
                logger.info(
                    "Re-asserting %s interception replaced by other code: %s",
                    interceptor.name,
                    ", ".join(displaced),
                )
                interceptor.install()
                restored.extend(interceptor.key(label) for label in displaced)
        for shim in self.shims:
            if not shim.installed and shim.install():
                logger.info("Installed %s shim", shim.name)
        return restored

    def uninstall(self) -> None:
        """Restore every original entry point."""
        if self._reassert_handle is not None:
            self._reassert_handle.cancel()
            self._reassert_handle = None
        for interceptor in (*self.shims, *self.interceptors):
            interceptor.uninstall()
        logger.info("Interception removed")

    def close(self) -> None:
        """Uninstall and stop listening to the store."""
        self.uninstall()
        if self.store is not None:
            self.store.unsubscribe(self._on_store_change)

    def __enter__(self) -> "Interposer":
        self.install()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _pull(self) -> None:
        if self.store is None:
            return
        self.state.update_rules(
            self.store.get_rules(),
            enabled=self.store.is_enabled() and self.settings.enabled,
        )

    def _on_store_change(self, store: RuleStore) -> None:
        self.refresh()

    def _schedule_reassert(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.reassert()
            return
        if self._reassert_handle is not None:
            self._reassert_handle.cancel()
        self._reassert_handle = loop.call_later(self.settings.reapply_delay_ms / 1000, self.reassert)
