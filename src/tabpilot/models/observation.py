"""Page observation models.

An ``Observation`` is a structured, size-bounded snapshot of what the
agent can see in its tab. It is rebuilt before every planning call and
after every non-``done`` action, and it is the only input the verifier
uses to judge whether an action did anything.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class PageKind(str, Enum):
    """Coarse classification of the current page."""

    MODAL = "modal"
    GOOGLE_DOC = "google_doc"
    GOOGLE_FORM = "google_form"
    GOOGLE_SLIDES = "google_slides"
    GOOGLE_SHEET = "google_sheet"
    VIDEO = "video"
    QUIZ = "quiz"
    GENERIC = "generic"
    UNSCRIPTABLE = "unscriptable"


@dataclass
class InteractiveElement:
    """A visible clickable element."""

    role: str = ""
    text: str = ""
    label: str = ""
    selector: str = ""
    tag: str = ""
    in_modal: bool = False


@dataclass
class EditableField:
    """A visible text-entry target (input, textarea, content-editable, ARIA textbox)."""

    selector: str = ""
    tag: str = ""
    kind: str = ""
    label: str = ""
    placeholder: str = ""
    value_length: int = 0
    search_like: bool = False
    rich: bool = False
    focused: bool = False
    in_modal: bool = False


@dataclass
class FormControl:
    """A checkbox, radio, select or switch and its current state."""

    kind: str = ""
    checked: bool = False
    group: str = ""
    label: str = ""
    selector: str = ""
    value: str = ""


@dataclass
class ModalSummary:
    """The single active modal, if any."""

    title: str = ""
    text: str = ""
    interactive_count: int = 0
    selector: str = ""


@dataclass
class FocusedElement:
    """Identity of ``document.activeElement``."""

    tag: str = ""
    role: str = ""
    label: str = ""

    @property
    def identity(self) -> str:
        return f"{self.role}|{self.label}"


@dataclass
class QuizProgress:
    """``Question N of M`` style counters found in the page text."""

    current: int
    total: int

    @property
    def finished(self) -> bool:
        return self.current >= self.total


@dataclass
class Observation:
    """Structured page snapshot used for planning and verification."""

    url: str
    title: str = ""
    page_kind: PageKind = PageKind.GENERIC
    text_excerpt: str = ""
    interactive: list[InteractiveElement] = field(default_factory=list)
    editable: list[EditableField] = field(default_factory=list)
    form_controls: list[FormControl] = field(default_factory=list)
    form_state_hash: str = ""
    modal: ModalSummary | None = None
    focused: FocusedElement | None = None
    page_hash: str = ""
    quiz_progress: QuizProgress | None = None
    note: str = ""
    captured_at: float = field(default_factory=time.time)

    @property
    def has_modal(self) -> bool:
        return self.modal is not None

    @property
    def focused_identity(self) -> str:
        return self.focused.identity if self.focused else ""

    @property
    def scriptable(self) -> bool:
        return self.page_kind != PageKind.UNSCRIPTABLE

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dict of the full observation."""
        data = asdict(self)
        data["page_kind"] = self.page_kind.value
        return data

    def to_prompt_dict(self, max_text: int = 1500) -> dict[str, Any]:
        """Return a compact view for model prompts.

        Empty fields are dropped and the text excerpt is truncated so the
        prompt stays within a predictable size.
        """
        prompt: dict[str, Any] = {
            "url": self.url,
            "title": self.title,
            "pageKind": self.page_kind.value,
        }
        if self.note:
            prompt["note"] = self.note
        if self.text_excerpt:
            prompt["text"] = self.text_excerpt[:max_text]
        if self.modal:
            prompt["activeModal"] = asdict(self.modal)
        if self.quiz_progress:
            prompt["quizProgress"] = asdict(self.quiz_progress)
        if self.focused:
            prompt["focused"] = asdict(self.focused)
        if self.interactive:
            prompt["interactive"] = [
                {k: v for k, v in asdict(el).items() if v not in ("", False)} for el in self.interactive
            ]
        if self.editable:
            prompt["editable"] = [
                {k: v for k, v in asdict(ed).items() if v not in ("", False, 0)} for ed in self.editable
            ]
        if self.form_controls:
            prompt["formControls"] = [
                {k: v for k, v in asdict(fc).items() if v != ""} for fc in self.form_controls
            ]
        return prompt
