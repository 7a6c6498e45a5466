"""Run-loop state machine definitions."""

from enum import Enum


class RunStatus(str, Enum):
    """Status of the single agent run, as published on the runtime state."""

    IDLE = "idle"
    READY = "ready"
    PLANNING_RUN = "planning_run"
    AWAITING_PLAN_APPROVAL = "awaiting_plan_approval"
    STARTING_RUN = "starting_run"
    RUNNING = "running"
    READING_BROWSER = "reading_browser"
    PLANNING = "planning"
    EXECUTING_ACTION = "executing_action"
    VERIFYING_ACTION = "verifying_action"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"
    PAUSED_MAX_STEPS = "paused_max_steps"


class RunMode(str, Enum):
    """``new`` allocates a fresh tab and session; ``continue`` reattaches."""

    NEW = "new"
    CONTINUE = "continue"


# Terminal states end a run and release the run slot
TERMINAL_STATES = {
    RunStatus.COMPLETED,
    RunStatus.STOPPED,
    RunStatus.FAILED,
    RunStatus.PAUSED_MAX_STEPS,
}

# Normal transitions (TERMINAL_STATES are always valid in addition to these)
STATE_TRANSITIONS: dict[RunStatus, list[RunStatus]] = {
    RunStatus.IDLE: [RunStatus.READY, RunStatus.PLANNING_RUN, RunStatus.STARTING_RUN],
    RunStatus.READY: [RunStatus.PLANNING_RUN, RunStatus.STARTING_RUN],
    RunStatus.PLANNING_RUN: [RunStatus.AWAITING_PLAN_APPROVAL],
    RunStatus.AWAITING_PLAN_APPROVAL: [RunStatus.STARTING_RUN, RunStatus.PLANNING_RUN],
    RunStatus.STARTING_RUN: [RunStatus.RUNNING],
    RunStatus.RUNNING: [RunStatus.READING_BROWSER],
    RunStatus.READING_BROWSER: [RunStatus.PLANNING],
    RunStatus.PLANNING: [RunStatus.EXECUTING_ACTION, RunStatus.PLANNING, RunStatus.READING_BROWSER],
    RunStatus.EXECUTING_ACTION: [RunStatus.VERIFYING_ACTION, RunStatus.READING_BROWSER],
    RunStatus.VERIFYING_ACTION: [RunStatus.READING_BROWSER],
}


def is_allowed_transition(old: RunStatus, new: RunStatus) -> bool:
    """Return True if ``old -> new`` is a normal or terminal transition."""
    if new in TERMINAL_STATES:
        return True
    if old in TERMINAL_STATES:
        return new in (RunStatus.READY, RunStatus.PLANNING_RUN, RunStatus.STARTING_RUN)
    return new in STATE_TRANSITIONS.get(old, [])
