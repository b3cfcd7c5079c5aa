"""Deterministic stage state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Prerequisites checked before RUNNING
- Cascade blocking of every pending stage on failure
- Every transition recorded in the build history
"""

from __future__ import annotations

from slugforge.models.stages import (
    DEFAULT_STAGE_DEFINITIONS,
    VALID_TRANSITIONS,
    StageDefinition,
    StageState,
    StageTransition,
)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class PrerequisiteNotMetError(RuntimeError):
    """Raised when a stage is started before its prerequisites passed."""


class StageMachine:
    """Tracks stage states for one build.

    Parameters
    ----------
    definitions:
        Stage definitions in execution order.
    """

    def __init__(self, definitions: list[StageDefinition] | None = None) -> None:
        self._definitions = {
            d.stage_id: d for d in (definitions or DEFAULT_STAGE_DEFINITIONS)
        }
        self._states: dict[str, StageState] = {
            sid: StageState.NOT_STARTED for sid in self._definitions
        }
        self._history: list[StageTransition] = []

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    @property
    def stage_ids(self) -> list[str]:
        return list(self._definitions)

    @property
    def history(self) -> list[StageTransition]:
        return list(self._history)

    def get_current_state(self, stage_id: str) -> StageState:
        """Return the current state of a stage."""
        return self._states[stage_id]

    def get_all_states(self) -> dict[str, StageState]:
        """Return a snapshot of all stage states."""
        return dict(self._states)

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self,
        stage_id: str,
        target_state: StageState,
        *,
        output_hash: str = "",
        block_reason: str | None = None,
    ) -> StageTransition:
        """Move a stage to *target_state* and record the transition.

        A transition to FAILED blocks every stage that has not started.
        """
        current = self._states[stage_id]

        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {stage_id} from {current.value} to {target_state.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

        if target_state == StageState.RUNNING:
            blocking = self.blocking_reasons(stage_id)
            if blocking:
                raise PrerequisiteNotMetError(
                    f"Cannot start {stage_id}: prerequisites not met. "
                    f"Blocked by: {'; '.join(blocking)}"
                )

        record = self._record(stage_id, current, target_state, output_hash, block_reason)

        if target_state == StageState.FAILED:
            for other_id, state in self._states.items():
                if state == StageState.NOT_STARTED:
                    self._record(
                        other_id,
                        state,
                        StageState.BLOCKED,
                        "",
                        f"{stage_id} failed",
                    )

        return record

    def blocking_reasons(self, stage_id: str) -> list[str]:
        """Prerequisites of *stage_id* that have not passed."""
        reasons: list[str] = []
        for prereq in self._definitions[stage_id].prerequisites:
            state = self._states.get(prereq, StageState.NOT_STARTED)
            if state != StageState.PASSED:
                reasons.append(f"{prereq} is {state.value}")
        return reasons

    def _record(
        self,
        stage_id: str,
        from_state: StageState,
        to_state: StageState,
        output_hash: str,
        block_reason: str | None,
    ) -> StageTransition:
        record = StageTransition(
            stage_id=stage_id,
            from_state=from_state,
            to_state=to_state,
            output_hash=output_hash,
            block_reason=block_reason,
        )
        self._states[stage_id] = to_state
        self._history.append(record)
        return record
