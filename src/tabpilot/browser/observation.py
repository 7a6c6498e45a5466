"""Observation capture.

Runs the read-only inspection script in the agent's tab and turns the raw
result into an ``Observation``. Hashes are computed here, in Python, over
the raw capture so that before/after comparisons in the verifier are
plain string equality.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlsplit

from tabpilot.browser.host import BrowserHost, TabHandle
from tabpilot.browser.scripts import (
    MAX_CONTROLS,
    MAX_EDITABLE,
    MAX_INTERACTIVE,
    MAX_RAW_CONTROLS,
    MAX_TEXT_CHARS,
    OBSERVE_JS,
)
from tabpilot.exceptions import ObservationError
from tabpilot.models.observation import (
    EditableField,
    FocusedElement,
    FormControl,
    InteractiveElement,
    ModalSummary,
    Observation,
    PageKind,
    QuizProgress,
)

logger = logging.getLogger(__name__)

SIGNATURE_TEXT_CHARS = 800

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193

_QUIZ_PATTERNS = (
    re.compile(r"\bquestion\s+(\d{1,3})\s*(?:of|/)\s*(\d{1,3})\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,3})\s*(?:of|/)\s*(\d{1,3})\s+questions?\b", re.IGNORECASE),
)

_VIDEO_HOSTS = ("youtube.com", "youtu.be", "vimeo.com", "twitch.tv", "dailymotion.com")
_VIDEO_TITLE_RE = re.compile(r"(- YouTube|\| Vimeo|- Twitch)\s*$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def fnv1a_32(text: str) -> str:
    """Return the 32-bit FNV-1a hash of ``text`` as 8 lowercase hex chars."""
    h = _FNV_OFFSET
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return f"{h:08x}"


def page_signature_hash(url: str, title: str, text: str, modal: ModalSummary | None) -> str:
    """Hash url, title, the first 800 chars of page text and the modal title/text."""
    parts = [
        url,
        title,
        text[:SIGNATURE_TEXT_CHARS],
        modal.title if modal else "",
        modal.text if modal else "",
    ]
    return fnv1a_32("\x1f".join(parts))


def form_state_hash(controls: list[dict[str, Any]]) -> str:
    """Hash kind, selector, checked state and value of every captured control, in order."""
    parts = [
        f"{c.get('kind', '')}:{c.get('selector', '')}:{int(bool(c.get('checked')))}:{c.get('value', '')}"
        for c in controls
    ]
    return fnv1a_32("|".join(parts))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def is_scriptable_url(url: str) -> bool:
    """Only http(s) pages accept injected scripts."""
    return urlsplit(url or "").scheme in ("http", "https")


def parse_quiz_progress(text: str) -> QuizProgress | None:
    """Find ``Question N of M`` / ``N/M questions`` counters in page text."""
    for pattern in _QUIZ_PATTERNS:
        m = pattern.search(text or "")
        if not m:
            continue
        current, total = int(m.group(1)), int(m.group(2))
        if 0 < total <= 500 and 0 <= current <= total:
            return QuizProgress(current=current, total=total)
    return None


def infer_page_kind(url: str, title: str, has_modal: bool, quiz: QuizProgress | None = None) -> PageKind:
    """Infer a coarse page kind from the URL, title and modal presence."""
    if has_modal:
        return PageKind.MODAL
    parts = urlsplit(url or "")
    host = (parts.hostname or "").lower()
    path = parts.path or ""
    if host == "docs.google.com":
        if path.startswith("/document/"):
            return PageKind.GOOGLE_DOC
        if path.startswith("/forms/"):
            return PageKind.GOOGLE_FORM
        if path.startswith("/presentation/"):
            return PageKind.GOOGLE_SLIDES
        if path.startswith("/spreadsheets/"):
            return PageKind.GOOGLE_SHEET
    if any(host == h or host.endswith("." + h) for h in _VIDEO_HOSTS) or _VIDEO_TITLE_RE.search(title or ""):
        return PageKind.VIDEO
    if quiz is not None:
        return PageKind.QUIZ
    return PageKind.GENERIC


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


def _pick(cls: type, raw: dict[str, Any]) -> Any:
    fields = cls.__dataclass_fields__
    return cls(**{k: v for k, v in raw.items() if k in fields})


def build_observation(raw: dict[str, Any]) -> Observation:
    """Convert the inspection script's payload into an ``Observation``.

    Raises:
        ObservationError: The payload is not a dict or has no ``url``.
    """
    if not isinstance(raw, dict) or not raw.get("url"):
        raise ObservationError(f"Inspection script returned an unusable payload: {str(raw)[:200]}")

    url = str(raw["url"])
    title = str(raw.get("title") or "")
    text = str(raw.get("text") or "")

    modal_raw = raw.get("modal")
    modal = _pick(ModalSummary, modal_raw) if isinstance(modal_raw, dict) else None
    focused_raw = raw.get("focused")
    focused = _pick(FocusedElement, focused_raw) if isinstance(focused_raw, dict) else None

    raw_controls = list(raw.get("controls") or [])[:MAX_RAW_CONTROLS]
    visible_controls = [c for c in raw_controls if c.get("visible", True)]
    quiz = parse_quiz_progress(text)

    return Observation(
        url=url,
        title=title,
        page_kind=infer_page_kind(url, title, modal is not None, quiz),
        text_excerpt=text,
        interactive=[_pick(InteractiveElement, e) for e in (raw.get("interactive") or [])[:MAX_INTERACTIVE]],
        editable=[_pick(EditableField, e) for e in (raw.get("editable") or [])[:MAX_EDITABLE]],
        form_controls=[_pick(FormControl, c) for c in visible_controls[:MAX_CONTROLS]],
        form_state_hash=form_state_hash(raw_controls),
        modal=modal,
        focused=focused,
        page_hash=page_signature_hash(url, title, text, modal),
        quiz_progress=quiz,
    )


def unscriptable_observation(url: str, title: str = "") -> Observation:
    """Minimal observation for pages scripts cannot run in (new tab, chrome://, file://)."""
    return Observation(
        url=url,
        title=title,
        page_kind=PageKind.UNSCRIPTABLE,
        note=(
            "This page cannot be inspected (not an http/https page). "
            "Use open_url to navigate to a regular web page first."
        ),
        form_state_hash=form_state_hash([]),
        page_hash=page_signature_hash(url, title, "", None),
    )


async def capture(host: BrowserHost, tab: TabHandle) -> Observation:
    """Read the current state of ``tab``.

    Non-http(s) pages yield a minimal observation instead of an error.
    Errors raised by the injected script propagate to the caller.
    """
    status = await host.tab_status(tab)
    if not is_scriptable_url(status.url):
        logger.debug("Tab %s not scriptable (%s)", tab.tab_id, status.url)
        return unscriptable_observation(status.url, status.title)

    raw = await host.run_in_page(
        tab,
        OBSERVE_JS,
        {
            "maxInteractive": MAX_INTERACTIVE,
            "maxEditable": MAX_EDITABLE,
            "maxRawControls": MAX_RAW_CONTROLS,
            "maxControls": MAX_CONTROLS,
            "maxText": MAX_TEXT_CHARS,
        },
    )
    obs = build_observation(raw)
    logger.debug(
        "Observed %s kind=%s interactive=%d editable=%d modal=%s page=%s form=%s",
        obs.url,
        obs.page_kind.value,
        len(obs.interactive),
        len(obs.editable),
        obs.has_modal,
        obs.page_hash,
        obs.form_state_hash,
    )
    return obs
