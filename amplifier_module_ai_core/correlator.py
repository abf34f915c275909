"""Request identity and timing for dispatched operations."""

from __future__ import annotations

import itertools
import secrets
import string
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._constants import REQUEST_ID_PREFIX, REQUEST_ID_RANDOM_LENGTH

if TYPE_CHECKING:
    from .models import CapabilityKind

_ALPHABET = string.ascii_lowercase + string.digits


class RequestIdGenerator:
    """
    Allocates request ids unique within the process lifetime.

    Format: ``<prefix>-<epoch ms>-<counter>-<random>``. The counter alone
    guarantees non-collision within one run; time and random parts keep ids
    distinguishable across runs in logs.
    """

    def __init__(self, prefix: str = REQUEST_ID_PREFIX):
        self._prefix = prefix
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def generate(self) -> str:
        with self._lock:
            n = next(self._counter)
        suffix = "".join(secrets.choice(_ALPHABET) for _ in range(REQUEST_ID_RANDOM_LENGTH))
        return f"{self._prefix}-{int(time.time() * 1000)}-{n}-{suffix}"


@dataclass
class RequestRecord:
    """Ephemeral record of one in-flight operation; discarded after its event fires."""

    request_id: str
    operation: str
    kind: CapabilityKind | None = None
    started_at: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000.0
