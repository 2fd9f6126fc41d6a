"""
Service lifecycle state machine.

Single source of truth for which lifecycle moves the orchestration loop
may make. Every transition goes through ``transition()`` so illegal moves
surface as ``InvalidTransitionError`` instead of silent state drift.

    STARTING -> RUNNING <-> HEALTH_CHECK
    RUNNING -> DEGRADED -> STOPPING -> STOPPED
"""

from __future__ import annotations

import logging
from enum import Enum

from vacancysync.domain.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Lifecycle state of the orchestration loop."""

    STARTING = "starting"
    RUNNING = "running"
    HEALTH_CHECK = "health_check"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self is PipelineState.STOPPED

    @property
    def accepts_work(self) -> bool:
        """Check if a new cycle may be started in this state."""
        return self is PipelineState.RUNNING


ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.STARTING: frozenset({PipelineState.RUNNING, PipelineState.STOPPING}),
    PipelineState.RUNNING: frozenset(
        {PipelineState.HEALTH_CHECK, PipelineState.DEGRADED, PipelineState.STOPPING}
    ),
    PipelineState.HEALTH_CHECK: frozenset(
        {PipelineState.RUNNING, PipelineState.DEGRADED, PipelineState.STOPPING}
    ),
    PipelineState.DEGRADED: frozenset({PipelineState.STOPPING}),
    PipelineState.STOPPING: frozenset({PipelineState.STOPPED}),
    PipelineState.STOPPED: frozenset(),
}


def can_transition(current: PipelineState, target: PipelineState) -> bool:
    """Check whether ``current -> target`` is a legal move."""
    return target in ALLOWED_TRANSITIONS[current]


def transition(current: PipelineState, target: PipelineState) -> PipelineState:
    """
    Validate and perform a lifecycle move.

    Args:
        current: State the loop is in
        target: Requested state

    Returns:
        The new state (``target``)

    Raises:
        InvalidTransitionError: If the move is not in the transition table
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
    logger.debug("State %s -> %s", current.value, target.value)
    return target
