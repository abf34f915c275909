"""
Provider registry for the orchestration core.

Holds the currently active providers per capability kind. Lists are
insertion-ordered and never reordered: registration order is the
deterministic tie-break used by every merge rule.

Concurrency:
    Mutation (register/dispose) swaps in a new tuple under a lock
    (copy-on-write), so a reader holding a snapshot never observes a torn
    list. Dispatch takes its snapshot at start; a provider unregistered
    mid-flight still completes or fails independently.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from .exceptions import DuplicateProviderError, UnsupportedCapabilityError
from .models import FANOUT_KINDS, CapabilityKind
from .protocols import AiProvider

logger = logging.getLogger(__name__)


class Registration:
    """
    Handle returned by ProviderRegistry.register().

    dispose() removes the provider from every kind list it was added to and,
    once no other registration still holds the provider, invokes the
    provider's own dispose(). Calling it again is a no-op.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        provider: AiProvider,
        kinds: tuple[CapabilityKind, ...],
    ):
        self._registry = registry
        self.provider = provider
        self.kinds = kinds
        self._disposed = False
        self._dispose_callbacks: list[Callable[[Registration], None]] = []

    @property
    def disposed(self) -> bool:
        return self._disposed

    def on_dispose(self, callback: Callable[[Registration], None]) -> None:
        """Invoke ``callback`` with this registration when it is disposed."""
        self._dispose_callbacks.append(callback)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        still_registered = self._registry._unregister(self)
        callbacks, self._dispose_callbacks = self._dispose_callbacks, []
        for callback in callbacks:
            callback(self)
        if still_registered:
            logger.debug(
                f"[REGISTRY] Provider '{self.provider.id}' still registered elsewhere, "
                f"not disposing"
            )
            return
        self.provider.dispose()

    def __enter__(self) -> Registration:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class ProviderRegistry:
    """Per-kind, insertion-ordered provider lists."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._providers: dict[CapabilityKind, tuple[AiProvider, ...]] = {}

    def register(
        self,
        provider: AiProvider,
        kinds: Iterable[CapabilityKind] | None = None,
    ) -> Registration:
        """
        Register ``provider`` for ``kinds``.

        Args:
            provider: The capability provider. The registry keeps a
                non-owning reference; the registrant keeps lifecycle control.
            kinds: Capability kinds to register for. Defaults to the
                provider's declared fan-out capabilities.

        Returns:
            Registration handle whose dispose() unregisters the provider.

        Raises:
            UnsupportedCapabilityError: If a kind is not declared by the provider.
            DuplicateProviderError: If the provider id is already registered
                for one of the kinds.
        """
        declared = frozenset(provider.capabilities)
        if kinds is None:
            # Declaration order, fan-out kinds only
            selected = tuple(k for k in CapabilityKind if k in declared and k in FANOUT_KINDS)
        else:
            selected = tuple(dict.fromkeys(kinds))

        for kind in selected:
            if kind not in declared:
                raise UnsupportedCapabilityError(
                    kind, f"Provider '{provider.id}' does not declare capability '{kind.value}'"
                )

        with self._lock:
            for kind in selected:
                if any(p.id == provider.id for p in self._providers.get(kind, ())):
                    raise DuplicateProviderError(provider.id, kind)
            for kind in selected:
                self._providers[kind] = (*self._providers.get(kind, ()), provider)

        logger.debug(
            f"[REGISTRY] Registered provider '{provider.name}' ({provider.id}) "
            f"for {[k.value for k in selected]}"
        )
        return Registration(self, provider, selected)

    def _unregister(self, registration: Registration) -> bool:
        """Remove ``registration``; True if its provider remains registered for other kinds."""
        provider = registration.provider
        with self._lock:
            for kind in registration.kinds:
                remaining = tuple(p for p in self._providers.get(kind, ()) if p is not provider)
                if remaining:
                    self._providers[kind] = remaining
                else:
                    self._providers.pop(kind, None)
            still_registered = any(
                p is provider for providers in self._providers.values() for p in providers
            )
        logger.debug(f"[REGISTRY] Unregistered provider '{provider.name}' ({provider.id})")
        return still_registered

    def providers_for(self, kind: CapabilityKind) -> tuple[AiProvider, ...]:
        """Snapshot of providers for ``kind`` in registration order."""
        return self._providers.get(kind, ())

    def is_enabled(self) -> bool:
        """True when at least one provider of any kind is registered."""
        return any(self._providers.values())

    def kinds(self) -> list[CapabilityKind]:
        return [k for k, providers in self._providers.items() if providers]

    def __len__(self) -> int:
        return len({id(p) for providers in self._providers.values() for p in providers})
