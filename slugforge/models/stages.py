"""Stage and cache state machine models — deterministic transitions."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class StageState(str, Enum):
    """Strict state model for each pipeline stage."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    BLOCKED = "blocked"
    FAILED = "failed"
    PASSED = "passed"


# Valid state transitions, enforced by StageMachine.
# A build has no retry: FAILED and PASSED are terminal.
VALID_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.NOT_STARTED: {StageState.RUNNING, StageState.BLOCKED},
    StageState.RUNNING: {StageState.PASSED, StageState.FAILED},
    StageState.BLOCKED: set(),
    StageState.FAILED: set(),
    StageState.PASSED: set(),
}


class CacheState(str, Enum):
    """Lifecycle of the cache store over one build."""

    NEW = "new"
    LOADED = "loaded"
    VALIDATED = "validated"
    PURGED = "purged"
    KEPT = "kept"
    PERSISTED = "persisted"


CACHE_TRANSITIONS: dict[CacheState, set[CacheState]] = {
    CacheState.NEW: {CacheState.LOADED},
    CacheState.LOADED: {CacheState.VALIDATED},
    CacheState.VALIDATED: {CacheState.PURGED, CacheState.KEPT},
    CacheState.PURGED: {CacheState.PERSISTED},
    CacheState.KEPT: {CacheState.PERSISTED},
    CacheState.PERSISTED: set(),
}


class StageDefinition(BaseModel):
    """Defines a pipeline stage and its prerequisites."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    ordinal: int
    prerequisites: list[str] = []


class StageTransition(BaseModel):
    """Records a single state transition for the build history."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    from_state: StageState
    to_state: StageState
    output_hash: str = ""
    block_reason: str | None = None  # populated when entering BLOCKED


# The provisioning sequence, in execution order.
DEFAULT_STAGE_DEFINITIONS: list[StageDefinition] = [
    StageDefinition(
        stage_id="s0_resolve_version",
        display_name="Resolve Runtime Version",
        ordinal=0,
    ),
    StageDefinition(
        stage_id="s1_install_runtime",
        display_name="Install Runtime",
        ordinal=1,
        prerequisites=["s0_resolve_version"],
    ),
    StageDefinition(
        stage_id="s2_environment",
        display_name="Build Environment",
        ordinal=2,
        prerequisites=["s1_install_runtime"],
    ),
    StageDefinition(
        stage_id="s3_load_cache",
        display_name="Load Cache",
        ordinal=3,
        prerequisites=["s2_environment"],
    ),
    StageDefinition(
        stage_id="s4_install_dependencies",
        display_name="Install Dependencies",
        ordinal=4,
        prerequisites=["s3_load_cache"],
    ),
    StageDefinition(
        stage_id="s5_persist_cache",
        display_name="Persist Cache",
        ordinal=5,
        prerequisites=["s4_install_dependencies"],
    ),
]
