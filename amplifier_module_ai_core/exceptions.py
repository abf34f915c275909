"""
Custom exceptions for the AI orchestration core.

This module defines a hierarchy of domain-specific exceptions that provide
clear error context and enable appropriate error handling strategies.

Exception Hierarchy:
    AiCoreError (base)
    ├── NoProvidersRegisteredError - No provider registered for a capability kind
    ├── ProviderFailureError - A provider call raised (original error chained)
    ├── CancelledOperationError - Cancellation token fired before completion
    ├── UnsupportedCapabilityError - Kind has no fan-out/merge, or provider lacks it
    ├── DuplicateProviderError - Provider id already registered for a kind
    └── InvalidContextUpdateError - Context update names an unknown field

None of these are retried by the core. Every dispatch failure reaches the
caller as a raised exception and is also published on the error event stream.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import CapabilityKind


class AiCoreError(Exception):
    """
    Base exception for all orchestration core errors.

    Example:
        try:
            result = await service.get_chat_response("hi")
        except AiCoreError as e:
            logger.error(f"AI request failed: {e}")
    """

    pass


class NoProvidersRegisteredError(AiCoreError):
    """
    Raised when a dispatch targets a capability kind with no providers.

    Reported immediately; no provider is invoked.

    Attributes:
        kind: The capability kind that had no registered providers.
    """

    def __init__(self, kind: CapabilityKind):
        self.kind = kind
        super().__init__(f"No AI providers registered for {kind.value}")


class ProviderFailureError(AiCoreError):
    """
    Raised when a provider call fails during dispatch.

    The originating exception is kept both as ``error`` and as ``__cause__``.
    Kernel LLM errors carry a ``retryable`` flag which is surfaced here so
    callers can decide whether to try again (the core itself never retries).

    Attributes:
        provider_id: Identity of the provider that failed.
        kind: Capability kind being dispatched.
        error: The original exception.
        retryable: Copied from the original error when it has one, else False.
    """

    def __init__(self, provider_id: str, kind: CapabilityKind, error: BaseException):
        self.provider_id = provider_id
        self.kind = kind
        self.error = error
        self.retryable = bool(getattr(error, "retryable", False))
        super().__init__(f"Provider '{provider_id}' failed during {kind.value}: {error}")


class CancelledOperationError(AiCoreError):
    """
    Raised when the cancellation token fires before a dispatch completes.

    Attributes:
        operation: Name of the cancelled operation, if known.
    """

    def __init__(self, operation: str | None = None, message: str | None = None):
        self.operation = operation
        if message:
            super().__init__(message)
        elif operation:
            super().__init__(f"Operation '{operation}' was cancelled")
        else:
            super().__init__("Operation was cancelled")


class UnsupportedCapabilityError(AiCoreError):
    """
    Raised for a capability kind that cannot be used the way requested.

    Either the kind has no multi-provider fan-out/merge defined, or a provider
    is being registered for a kind it does not declare.

    Attributes:
        kind: The offending capability kind.
    """

    def __init__(self, kind: CapabilityKind, message: str | None = None):
        self.kind = kind
        super().__init__(message or f"Capability '{kind.value}' has no multi-provider dispatch")


class DuplicateProviderError(AiCoreError):
    """
    Raised when a provider id is registered twice for the same kind.

    Attributes:
        provider_id: The duplicated provider identity.
        kind: The kind it was already registered for.
    """

    def __init__(self, provider_id: str, kind: CapabilityKind):
        self.provider_id = provider_id
        self.kind = kind
        super().__init__(f"Provider '{provider_id}' is already registered for {kind.value}")


class InvalidContextUpdateError(AiCoreError):
    """
    Raised when a context update names fields AiContext does not have.

    Attributes:
        fields: The unknown field names.
    """

    def __init__(self, fields: list[str] | Any):
        self.fields = sorted(fields)
        super().__init__(f"Unknown context field(s): {', '.join(self.fields)}")
