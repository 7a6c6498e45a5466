"""Goal-specific completion gates.

After the done checker accepts, these deterministic checks make sure the
page is really in the state the goal implies. A gate returns a rejection
message, or ``None`` when it has nothing to object to.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from tabpilot.models.observation import Observation

CompletionGate = Callable[[str, Observation], Optional[str]]

_QUIZ_GOAL_RE = re.compile(r"\b(quiz|test|exam|questionnaire|assessment)\b", re.IGNORECASE)
_DISMISS_GOAL_RE = re.compile(
    r"\b(close|dismiss|get rid of)\b.*\b(modal|dialog|popup|pop-up|banner|overlay)\b", re.IGNORECASE
)


def quiz_gate(goal: str, observation: Observation) -> str | None:
    """A quiz goal is not done while the page still shows unanswered questions."""
    progress = observation.quiz_progress
    if not _QUIZ_GOAL_RE.search(goal) or progress is None or progress.finished:
        return None
    return (
        f"The page still shows question {progress.current} of {progress.total}. "
        "Finish the remaining questions before claiming done."
    )


def modal_gate(goal: str, observation: Observation) -> str | None:
    """A goal to dismiss a dialog is not done while a modal is still active."""
    if not _DISMISS_GOAL_RE.search(goal) or not observation.has_modal:
        return None
    title = observation.modal.title if observation.modal else ""
    return f"A modal is still open ({title or 'untitled'}). Close it before claiming done."


DEFAULT_GATES: tuple[CompletionGate, ...] = (quiz_gate, modal_gate)


def run_gates(goal: str, observation: Observation, gates: tuple[CompletionGate, ...] = DEFAULT_GATES) -> str | None:
    """Return the first gate rejection, or ``None`` if every gate passes."""
    for gate in gates:
        message = gate(goal, observation)
        if message:
            return message
    return None
