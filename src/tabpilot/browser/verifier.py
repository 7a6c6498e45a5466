"""Effect verification.

Judges whether an action actually changed the page by comparing the
observations taken immediately before and after it. The planner's and
executor's own claims are not trusted; only observation deltas count.
"""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

from tabpilot.browser.actions import normalize_http_url
from tabpilot.browser.scripts import LONG_TEXT_CHARS
from tabpilot.models.action import (
    Action,
    ClickSelector,
    ClickText,
    CloseModal,
    Done,
    OpenUrl,
    TypeSelector,
    Wait,
)
from tabpilot.models.observation import Observation
from tabpilot.models.results import ExecutionResult, VerificationCode, VerificationResult

logger = logging.getLogger(__name__)

TARGET_KINDS = ("search", "rich", "textarea", "input", "unknown")


def _hostname(url: str) -> str:
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def hosts_match(expected: str, actual: str) -> bool:
    """True when hosts are equal (ignoring ``www.``) or one is a subdomain of the other."""
    if not expected or not actual:
        return False
    return expected == actual or actual.endswith("." + expected) or expected.endswith("." + actual)


def meaningful_changes(before: Observation, after: Observation) -> list[str]:
    """Return the names of the page signals that differ between two observations."""
    changes: list[str] = []
    if before.url != after.url:
        changes.append("url")
    if before.page_hash != after.page_hash:
        changes.append("page_signature")
    if before.form_state_hash != after.form_state_hash:
        changes.append("form_state")
    if before.has_modal != after.has_modal:
        changes.append("modal")
    if before.focused_identity != after.focused_identity:
        changes.append("focus")
    return changes


def _editable_changes(before: Observation, after: Observation) -> list[str]:
    lengths = {ed.selector: ed.value_length for ed in before.editable}
    changed = []
    for ed in after.editable:
        if ed.selector in lengths and lengths[ed.selector] != ed.value_length:
            changed.append(ed.selector)
        elif ed.selector not in lengths and ed.value_length > 0:
            changed.append(ed.selector)
    return changed


def classify_target_kind(exec_result: ExecutionResult) -> str:
    """Read the typed-into element's kind from executor metadata."""
    meta = exec_result.metadata
    kind = str(meta.get("target_kind") or "").lower()
    if meta.get("search_like") and kind != "search":
        kind = "search"
    return kind if kind in TARGET_KINDS else "unknown"


def verify_action(
    action: Action,
    before: Observation,
    after: Observation,
    exec_result: ExecutionResult,
) -> VerificationResult:
    """Verify that ``action`` had an observable effect.

    Args:
        action: The action that was executed.
        before: Observation captured before execution.
        after: Observation captured after execution.
        exec_result: The executor's result (used only for target metadata).

    Returns:
        A ``VerificationResult``; ``ok=False`` carries a rejection code.
    """
    if isinstance(action, (Wait, Done)):
        return VerificationResult.accept(f"{action.type} needs no page change")

    if isinstance(action, OpenUrl):
        return _verify_open_url(action, before, after)

    if isinstance(action, (ClickText, ClickSelector, CloseModal)):
        changes = meaningful_changes(before, after)
        if not changes:
            return VerificationResult.reject(
                VerificationCode.NO_PAGE_CHANGE,
                f"{action.type} produced no observable change (url, page, form state, modal and focus unchanged)",
                url=after.url,
            )
        return VerificationResult.accept(f"Observed change: {', '.join(changes)}", changes=changes)

    if isinstance(action, TypeSelector):
        return _verify_type(action, before, after, exec_result)

    raise TypeError(f"Unhandled action type {type(action).__name__}")


def _verify_open_url(action: OpenUrl, before: Observation, after: Observation) -> VerificationResult:
    if before.url == after.url:
        return VerificationResult.reject(
            VerificationCode.NO_NAVIGATION_CHANGE,
            f"URL did not change (still {after.url})",
            url=after.url,
        )
    expected = _hostname(normalize_http_url(action.url) or action.url)
    actual = _hostname(after.url)
    if expected and not hosts_match(expected, actual):
        return VerificationResult.reject(
            VerificationCode.WRONG_DESTINATION,
            f"Navigated to {actual or after.url} but expected {expected}",
            expected_host=expected,
            actual_host=actual,
            url=after.url,
        )
    return VerificationResult.accept(f"Navigated to {after.url}", url=after.url)


def _verify_type(
    action: TypeSelector,
    before: Observation,
    after: Observation,
    exec_result: ExecutionResult,
) -> VerificationResult:
    kind = classify_target_kind(exec_result)
    length = len(action.text)
    if kind == "search" and length > LONG_TEXT_CHARS:
        return VerificationResult.reject(
            VerificationCode.WRONG_TARGET_KIND,
            f"Typed {length} characters into a search field; long text belongs in a content field",
            target_kind=kind,
            text_length=length,
        )
    if length > 0:
        changes = meaningful_changes(before, after) + [f"value:{s}" for s in _editable_changes(before, after)]
        if not changes:
            return VerificationResult.reject(
                VerificationCode.NO_VISIBLE_TEXT_CHANGE,
                "Typing produced no observable change in the page or any field",
                target_kind=kind,
                text_length=length,
            )
    return VerificationResult.accept(
        f"Typed {length} characters into {kind} field", target_kind=kind, text_length=length
    )
