"""Base contract for transport interceptors.

An interceptor replaces named attributes on a transport's classes with
wrappers.  Installation follows one contract for every transport:

* the original attribute is captured once, in the shared state, so a second
  install never mistakes an earlier wrapper for the original;
* installing again only re-asserts the wrappers;
* ``displaced()`` reports wrappers that some other code has since replaced,
  and ``install()`` puts them back.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from interpose.engine.state import InterceptionState

logger = logging.getLogger(__name__)

WRAPPER_MARK = "__interpose_wrapper__"


def mark_wrapper(func: Callable[..., Any]) -> Callable[..., Any]:
    setattr(func, WRAPPER_MARK, True)
    return func


def is_wrapper(func: Any) -> bool:
    return getattr(func, WRAPPER_MARK, False) is True


class Interceptor(ABC):
    """Installs wrappers over one transport's entry points."""

    name: str

    def __init__(self, state: InterceptionState):
        self.state = state
        self._wrappers: dict[str, Callable[..., Any]] = {}

    @abstractmethod
    def targets(self) -> dict[str, tuple[Any, str]]:
        """Map a short label to the ``(owner, attribute)`` pair to replace."""

    @abstractmethod
    def build_wrapper(self, label: str) -> Callable[..., Any]:
        """Return the replacement for the entry point called ``label``."""

    def available(self) -> bool:
        """Return False when the transport is not present in this process."""
        return True

    def key(self, label: str) -> str:
        return f"{self.name}:{label}"

    def original(self, label: str) -> Callable[..., Any]:
        return self.state.original(self.key(label))

    @property
    def installed(self) -> bool:
        return bool(self._wrappers)

    def install(self) -> bool:
        """Install or re-assert every wrapper.  Returns False if unavailable."""
        if not self.available():
            return False
        for label, (owner, attribute) in self.targets().items():
            current = getattr(owner, attribute)
            if not is_wrapper(current):
                self.state.capture_original(self.key(label), current)
            wrapper = self._wrappers.get(label)
            if wrapper is None:
                wrapper = self._wrappers[label] = mark_wrapper(self.build_wrapper(label))
            if current is not wrapper:
                setattr(owner, attribute, wrapper)
        logger.debug("Interceptor %s installed", self.name)
        return True

    def displaced(self) -> list[str]:
        """Labels whose wrapper is no longer what the owner exposes."""
        if not self.installed:
            return []
        return [
            label
            for label, (owner, attribute) in self.targets().items()
            if getattr(owner, attribute) is not self._wrappers.get(label)
        ]

    def uninstall(self) -> None:
        """Put every captured original back."""
        if not self.installed or not self.available():
            self._wrappers.clear()
            return
        for label, (owner, attribute) in self.targets().items():
            original = self.state.release_original(self.key(label))
            if original is not None:
                setattr(owner, attribute, original)
        self._wrappers.clear()
        logger.debug("Interceptor %s removed", self.name)
