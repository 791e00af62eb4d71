"""
Lifecycle transition validation for job descriptors.

Lifecycle: CREATED → PERSISTED → {RUNNING | STOPPED} → CLEARED

RUNNING and STOPPED are re-evaluated by every status probe and may flip
either way. Probing an unsaved (CREATED) descriptor updates its status
but not its lifecycle. CLEARED is terminal: a cleared descriptor is never saved,
probed or signalled again. Re-using the name means a fresh create().
"""

from typing import FrozenSet, Set, Tuple

from .errors import InvalidStateTransitionError
from .models import JobLifecycle


TERMINAL_LIFECYCLE_STATES: FrozenSet[JobLifecycle] = frozenset({
    JobLifecycle.CLEARED,
})

_LIFECYCLE_TRANSITIONS: Set[Tuple[JobLifecycle, JobLifecycle]] = {
    # save()
    (JobLifecycle.CREATED, JobLifecycle.PERSISTED),

    # get_status()
    (JobLifecycle.PERSISTED, JobLifecycle.RUNNING),
    (JobLifecycle.PERSISTED, JobLifecycle.STOPPED),
    (JobLifecycle.RUNNING, JobLifecycle.STOPPED),
    (JobLifecycle.STOPPED, JobLifecycle.RUNNING),

    # clear() / kill(), including never-saved descriptors
    (JobLifecycle.CREATED, JobLifecycle.CLEARED),
    (JobLifecycle.PERSISTED, JobLifecycle.CLEARED),
    (JobLifecycle.RUNNING, JobLifecycle.CLEARED),
    (JobLifecycle.STOPPED, JobLifecycle.CLEARED),
}


def is_lifecycle_terminal(state: JobLifecycle) -> bool:
    return state in TERMINAL_LIFECYCLE_STATES


def can_transition_lifecycle(from_state: JobLifecycle, to_state: JobLifecycle) -> bool:
    """
    Check if a lifecycle transition is legal.

    Non-terminal states may "transition" to themselves (re-save, re-probe).
    Terminal states cannot transition at all.
    """
    if is_lifecycle_terminal(from_state):
        return False

    if from_state == to_state:
        return True

    return (from_state, to_state) in _LIFECYCLE_TRANSITIONS


def validate_lifecycle_transition(
    job_name: str, from_state: JobLifecycle, to_state: JobLifecycle
) -> None:
    """
    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_lifecycle(from_state, to_state):
        raise InvalidStateTransitionError(job_name, from_state.value, to_state.value)


def lifecycle_after_probe(current: JobLifecycle, alive: bool) -> JobLifecycle:
    """An unsaved descriptor stays CREATED; a persisted one follows the probe."""
    if current == JobLifecycle.CREATED:
        return current
    return JobLifecycle.RUNNING if alive else JobLifecycle.STOPPED


def lifecycle_after_save(current: JobLifecycle) -> JobLifecycle:
    """Saving promotes a new descriptor; an already-probed one keeps its state."""
    if current == JobLifecycle.CREATED:
        return JobLifecycle.PERSISTED
    return current
