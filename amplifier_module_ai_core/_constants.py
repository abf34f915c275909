"""Constants for the AI capability orchestration core.

This module defines constants used across the orchestration core,
following the principle of single source of truth.

Dispatch Policy:
- STRICT (default): every invoked provider must succeed, first failure wins
- BEST_EFFORT: failures are logged and skipped, successes are merged
- Override via config if partial results are acceptable:
    {"dispatch_policy": "best_effort"}
"""

from enum import Enum

# Default configuration values
DEFAULT_DEBUG_TRUNCATE_LENGTH = 180

# Context history
# Snapshots are recorded before each context mutation, oldest evicted first.
DEFAULT_CONTEXT_HISTORY_LIMIT = 10

# Request ids: "ai-<epoch ms>-<counter>-<random>"
REQUEST_ID_PREFIX = "ai"
ASSISTANT_REQUEST_ID_PREFIX = "assistant"
REQUEST_ID_RANDOM_LENGTH = 9

# Assistant post-parsing default score (when no "score: N" marker is present)
DEFAULT_ANALYSIS_SCORE = 5

# Name under which mount() registers the service with the coordinator
COORDINATOR_CAPABILITY_NAME = "ai_core"


class DispatchPolicy(Enum):
    """How the dispatch engine treats individual provider failures."""

    STRICT = "strict"  # Any failure fails the whole dispatch
    BEST_EFFORT = "best_effort"  # Merge what succeeded, fail only if nothing did


DEFAULT_DISPATCH_POLICY = DispatchPolicy.STRICT

# ═══════════════════════════════════════════════════════════════════════════════
# Hook Event Names
# ═══════════════════════════════════════════════════════════════════════════════
#
# Bus events are mirrored onto the coordinator's hook registry under these
# names so logging/streaming modules can observe the core without holding a
# reference to the service.

EVENT_RESPONSE = "ai_core:response"
EVENT_ERROR = "ai_core:error"
EVENT_CONTEXT_CHANGED = "ai_core:context_changed"
