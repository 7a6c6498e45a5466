"""Unit tests for the effect verifier."""

from __future__ import annotations

from tabpilot.browser.verifier import (
    classify_target_kind,
    hosts_match,
    meaningful_changes,
    verify_action,
)
from tabpilot.models.action import ClickSelector, ClickText, CloseModal, Done, OpenUrl, TypeSelector, Wait
from tabpilot.models.observation import EditableField, FocusedElement, ModalSummary, Observation
from tabpilot.models.results import ExecutionResult, VerificationCode

OK = ExecutionResult.success("click")


def _obs(url: str = "https://a.example", **kwargs) -> Observation:
    kwargs.setdefault("page_hash", "p1")
    kwargs.setdefault("form_state_hash", "f1")
    return Observation(url=url, **kwargs)


class TestClickVerification:
    def test_identical_observations_reject_click_even_if_executor_claims_success(self) -> None:
        before = _obs(focused=FocusedElement(role="button", label="Go"))
        after = _obs(focused=FocusedElement(role="button", label="Go"))
        for action in (ClickText(text="Go"), ClickSelector(selector="#go"), CloseModal()):
            result = verify_action(action, before, after, ExecutionResult.success("click", "clicked!"))
            assert result.ok is False
            assert result.code == VerificationCode.NO_PAGE_CHANGE

    def test_each_signal_counts_as_change(self) -> None:
        before = _obs()
        variants = {
            "url": _obs(url="https://a.example/next"),
            "page_signature": _obs(page_hash="p2"),
            "form_state": _obs(form_state_hash="f2"),
            "modal": _obs(modal=ModalSummary(title="Dialog")),
            "focus": _obs(focused=FocusedElement(role="textbox", label="Email")),
        }
        for name, after in variants.items():
            assert meaningful_changes(before, after) == [name]
            assert verify_action(ClickText(text="x"), before, after, OK).ok

    def test_close_modal_accepted_when_modal_disappears(self) -> None:
        before = _obs(modal=ModalSummary(title="Cookies"))
        result = verify_action(CloseModal(), before, _obs(), OK)
        assert result.ok
        assert result.details["changes"] == ["modal"]


class TestOpenUrlVerification:
    def test_unchanged_url_rejected(self) -> None:
        result = verify_action(OpenUrl(url="https://a.example"), _obs(), _obs(page_hash="p2"), OK)
        assert result.code == VerificationCode.NO_NAVIGATION_CHANGE

    def test_wrong_destination_rejected(self) -> None:
        before = _obs("https://start.example")
        after = _obs("https://b.example/landing")
        result = verify_action(OpenUrl(url="https://a.example/x"), before, after, OK)
        assert result.code == VerificationCode.WRONG_DESTINATION
        assert result.details["expected_host"] == "a.example"
        assert result.details["actual_host"] == "b.example"

    def test_www_and_subdomains_accepted(self) -> None:
        before = _obs("https://start.example")
        assert verify_action(OpenUrl(url="example.com"), before, _obs("https://www.example.com/"), OK).ok
        assert verify_action(OpenUrl(url="https://example.com"), before, _obs("https://m.example.com/"), OK).ok

    def test_hosts_match(self) -> None:
        assert hosts_match("example.com", "example.com")
        assert hosts_match("example.com", "shop.example.com")
        assert not hosts_match("example.com", "badexample.com")
        assert not hosts_match("", "example.com")


class TestTypeVerification:
    def test_long_text_into_search_rejected(self) -> None:
        exec_result = ExecutionResult.success("value", target_kind="search")
        result = verify_action(TypeSelector(selector="#q", text="x" * 120), _obs(), _obs(page_hash="p2"), exec_result)
        assert result.code == VerificationCode.WRONG_TARGET_KIND

    def test_search_like_flag_counts_as_search(self) -> None:
        exec_result = ExecutionResult.success("value", target_kind="input", search_like=True)
        assert classify_target_kind(exec_result) == "search"
        result = verify_action(TypeSelector(selector="#q", text="y" * 81), _obs(), _obs(page_hash="p2"), exec_result)
        assert result.code == VerificationCode.WRONG_TARGET_KIND

    def test_short_search_query_accepted(self) -> None:
        exec_result = ExecutionResult.success("value", target_kind="search")
        result = verify_action(TypeSelector(selector="#q", text="weather"), _obs(), _obs(page_hash="p2"), exec_result)
        assert result.ok

    def test_no_visible_change_rejected(self) -> None:
        exec_result = ExecutionResult.success("value", target_kind="input")
        result = verify_action(TypeSelector(selector="#name", text="Ada"), _obs(), _obs(), exec_result)
        assert result.code == VerificationCode.NO_VISIBLE_TEXT_CHANGE

    def test_field_value_length_change_is_enough(self) -> None:
        before = _obs(editable=[EditableField(selector="#body", value_length=0)])
        after = _obs(editable=[EditableField(selector="#body", value_length=200)])
        exec_result = ExecutionResult.success("insert_text", target_kind="rich")
        assert verify_action(TypeSelector(selector="#body", text="z" * 200), before, after, exec_result).ok

    def test_unknown_kind(self) -> None:
        assert classify_target_kind(ExecutionResult.success("value", target_kind="weird")) == "unknown"


class TestTrivialActions:
    def test_wait_and_done_need_no_change(self) -> None:
        assert verify_action(Wait(ms=200), _obs(), _obs(), OK).ok
        assert verify_action(Done(), _obs(), _obs(), OK).ok
