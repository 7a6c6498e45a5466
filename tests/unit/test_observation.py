"""Unit tests for observation building, hashing and page classification."""

from __future__ import annotations

from typing import Any

import pytest

from tabpilot.browser.host import TabHandle
from tabpilot.browser.observation import (
    build_observation,
    capture,
    fnv1a_32,
    form_state_hash,
    infer_page_kind,
    is_scriptable_url,
    page_signature_hash,
    parse_quiz_progress,
)
from tabpilot.exceptions import ObservationError
from tabpilot.models.observation import ModalSummary, PageKind


def _raw(**overrides: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "url": "https://shop.example/cart",
        "title": "Cart",
        "text": "Your cart has 2 items",
        "interactive": [{"role": "button", "text": "Checkout", "selector": "#checkout", "tag": "button"}],
        "editable": [{"selector": "#coupon", "tag": "input", "kind": "input", "value_length": 0}],
        "controls": [
            {"kind": "checkbox", "selector": "#gift", "checked": False, "value": "on", "visible": True},
            {"kind": "radio", "selector": "#hidden", "checked": True, "value": "a", "visible": False},
        ],
        "modal": None,
        "focused": {"tag": "input", "role": "textbox", "label": "Coupon"},
    }
    raw.update(overrides)
    return raw


class TestHashing:
    def test_fnv1a_known_values(self) -> None:
        assert fnv1a_32("") == "811c9dc5"
        assert fnv1a_32("a") == "e40c292c"
        assert len(fnv1a_32("anything at all")) == 8

    def test_identical_state_identical_hashes(self) -> None:
        first = build_observation(_raw())
        second = build_observation(_raw())
        assert first.page_hash == second.page_hash
        assert first.form_state_hash == second.form_state_hash

    @pytest.mark.parametrize(
        "field, value",
        [
            ("url", "https://shop.example/checkout"),
            ("title", "Checkout"),
            ("text", "Your cart is empty"),
            ("modal", {"title": "Sign in", "text": "Please sign in"}),
        ],
    )
    def test_page_signature_changes_with_each_field(self, field: str, value: Any) -> None:
        base = build_observation(_raw())
        changed = build_observation(_raw(**{field: value}))
        assert base.page_hash != changed.page_hash

    def test_page_signature_only_uses_text_prefix(self) -> None:
        prefix = "x" * 800
        assert page_signature_hash("u", "t", prefix + "A", None) == page_signature_hash("u", "t", prefix + "B", None)

    def test_form_state_changes_with_checked_or_value(self) -> None:
        controls = [{"kind": "checkbox", "selector": "#a", "checked": False, "value": "on"}]
        toggled = [{"kind": "checkbox", "selector": "#a", "checked": True, "value": "on"}]
        revalued = [{"kind": "checkbox", "selector": "#a", "checked": False, "value": "off"}]
        assert form_state_hash(controls) != form_state_hash(toggled)
        assert form_state_hash(controls) != form_state_hash(revalued)

    def test_hidden_controls_count_toward_hash(self) -> None:
        base = build_observation(_raw())
        controls = _raw()["controls"]
        controls[1]["checked"] = False
        changed = build_observation(_raw(controls=controls))
        assert len(base.form_controls) == 1
        assert base.form_state_hash != changed.form_state_hash

    def test_modal_summary_in_signature(self) -> None:
        modal = ModalSummary(title="Cookies", text="We use cookies")
        assert page_signature_hash("u", "t", "x", modal) != page_signature_hash("u", "t", "x", None)


class TestClassification:
    def test_quiz_progress(self) -> None:
        progress = parse_quiz_progress("Great! Question 3 of 10 - pick one")
        assert progress is not None and (progress.current, progress.total) == (3, 10)
        assert parse_quiz_progress("4/5 questions answered").current == 4
        assert parse_quiz_progress("No counters here") is None

    @pytest.mark.parametrize(
        "url, title, expected",
        [
            ("https://docs.google.com/document/d/1/edit", "Doc", PageKind.GOOGLE_DOC),
            ("https://docs.google.com/forms/d/e/1/viewform", "Form", PageKind.GOOGLE_FORM),
            ("https://docs.google.com/presentation/d/1", "Slides", PageKind.GOOGLE_SLIDES),
            ("https://docs.google.com/spreadsheets/d/1", "Sheet", PageKind.GOOGLE_SHEET),
            ("https://www.youtube.com/watch?v=1", "Video", PageKind.VIDEO),
            ("https://example.com", "Some talk - YouTube", PageKind.VIDEO),
            ("https://example.com", "Home", PageKind.GENERIC),
        ],
    )
    def test_infer_page_kind(self, url: str, title: str, expected: PageKind) -> None:
        assert infer_page_kind(url, title, has_modal=False) == expected

    def test_modal_wins(self) -> None:
        assert infer_page_kind("https://docs.google.com/document/d/1", "Doc", has_modal=True) == PageKind.MODAL

    def test_scriptable_urls(self) -> None:
        assert is_scriptable_url("https://example.com")
        assert is_scriptable_url("http://localhost:3000")
        assert not is_scriptable_url("chrome://newtab")
        assert not is_scriptable_url("about:blank")
        assert not is_scriptable_url("")


class TestBuildObservation:
    def test_fields(self) -> None:
        obs = build_observation(_raw())
        assert obs.url == "https://shop.example/cart"
        assert obs.interactive[0].selector == "#checkout"
        assert obs.editable[0].selector == "#coupon"
        assert obs.focused_identity == "textbox|Coupon"
        assert obs.has_modal is False
        assert obs.page_kind == PageKind.GENERIC

    def test_unusable_payload(self) -> None:
        with pytest.raises(ObservationError):
            build_observation({"title": "no url"})
        with pytest.raises(ObservationError):
            build_observation("nope")  # type: ignore[arg-type]

    def test_prompt_dict_is_compact(self) -> None:
        prompt = build_observation(_raw()).to_prompt_dict()
        assert prompt["pageKind"] == "generic"
        assert "activeModal" not in prompt
        assert prompt["interactive"][0] == {"role": "button", "text": "Checkout", "selector": "#checkout", "tag": "button"}


class TestCapture:
    @pytest.mark.anyio
    async def test_unscriptable_page_needs_no_script(self, fake_host) -> None:
        tab = await fake_host.create_tab()
        fake_host.pages[tab.tab_id]["url"] = "chrome://newtab/"
        obs = await capture(fake_host, tab)
        assert obs.page_kind == PageKind.UNSCRIPTABLE
        assert obs.note
        assert fake_host.count("observe") == 0

    @pytest.mark.anyio
    async def test_capture_runs_inspection_script(self, fake_host) -> None:
        tab = await fake_host.create_tab()
        obs = await capture(fake_host, tab)
        assert obs.url == "https://start.example/"
        assert fake_host.count("observe") == 1

    @pytest.mark.anyio
    async def test_script_errors_propagate(self, fake_host) -> None:
        tab = await fake_host.create_tab()
        fake_host.observe_error = RuntimeError("frame detached")
        with pytest.raises(RuntimeError):
            await capture(fake_host, TabHandle(tab_id=tab.tab_id))
