"""Unit tests for the action executor."""

from __future__ import annotations

from typing import Any

import pytest

from tabpilot.browser.actions import ActionExecutor, choose_editable_target, normalize_http_url
from tabpilot.exceptions import ActionValidationError
from tabpilot.models.action import ClickSelector, ClickText, CloseModal, Done, OpenUrl, TypeSelector, Wait


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture()
def executor(fake_host) -> ActionExecutor:
    return ActionExecutor(fake_host, settle_ms=0, open_url_timeout_ms=200, poll_ms=0, sleep=_no_sleep)


class TestNormalizeUrl:
    def test_adds_scheme(self) -> None:
        assert normalize_http_url("example.com/a") == "https://example.com/a"

    def test_keeps_http(self) -> None:
        assert normalize_http_url("http://localhost:3000") == "http://localhost:3000"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("localhost:3000/app", "https://localhost:3000/app"),
            ("shop.example.com:8443", "https://shop.example.com:8443"),
        ],
    )
    def test_bare_host_port_gets_https(self, raw: str, expected: str) -> None:
        assert normalize_http_url(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "javascript:alert(1)",
            "file:///etc/passwd",
            "ftp://x.example",
            "mailto:someone@example.com",
            "tel:5551234",
            "sms:5551234",
            "http:example.com",
        ],
    )
    def test_rejects_other_schemes(self, raw: str) -> None:
        assert normalize_http_url(raw) is None


class TestChooseEditableTarget:
    def test_prefers_focused_then_rich(self) -> None:
        frames = [
            [{"selector": "#a", "kind": "input"}, {"selector": "#b", "kind": "rich", "rich": True}],
            [{"selector": "#c", "kind": "textarea", "focused": True}],
        ]
        choice = choose_editable_target(frames, "hi")
        assert (choice.frame_index, choice.selector, choice.reason) == (1, "#c", "focused")
        frames[1][0]["focused"] = False
        assert choose_editable_target(frames, "hi").selector == "#b"

    def test_long_text_excludes_search_fields(self) -> None:
        frames = [[{"selector": "#q", "kind": "search", "search_like": True, "focused": True}]]
        assert choose_editable_target(frames, "x" * 200) is None
        frames[0].append({"selector": "#body", "kind": "textarea"})
        choice = choose_editable_target(frames, "x" * 200)
        assert (choice.selector, choice.reason) == ("#body", "non_search")

    def test_skips_unscriptable_frames(self) -> None:
        assert choose_editable_target([None, "oops", []], "x") is None


class TestExecute:
    @pytest.mark.anyio
    async def test_open_url_waits_for_load(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()
        result = await executor.execute(tab, OpenUrl(url="news.example"))
        assert result.ok
        assert result.metadata["loaded"] is True
        assert result.metadata["url"] == "https://news.example"
        assert ("navigate", "https://news.example") in fake_host.calls

    @pytest.mark.anyio
    async def test_open_url_timeout_is_best_effort(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()

        async def slow_navigate(tab, url):
            fake_host.pages[tab.tab_id].update(url=url, status="loading")

        fake_host.navigate = slow_navigate
        result = await executor.execute(tab, OpenUrl(url="https://slow.example"))
        assert result.ok
        assert result.metadata["loaded"] is False

    @pytest.mark.anyio
    @pytest.mark.parametrize("url", ["javascript:void(0)", "mailto:someone@example.com", "tel:5551234"])
    async def test_open_url_rejects_bad_scheme(self, fake_host, executor, url: str) -> None:
        tab = await fake_host.create_tab()
        result = await executor.execute(tab, OpenUrl(url=url))
        assert not result.ok
        assert result.code == "invalid_url"

    @pytest.mark.anyio
    async def test_click_passes_selector_or_text(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()
        await executor.execute(tab, ClickSelector(selector="#buy"))
        await executor.execute(tab, ClickText(text="Buy now"))
        clicks = [arg for name, arg in fake_host.calls if name == "click"]
        assert clicks == [{"selector": "#buy"}, {"text": "Buy now"}]

    @pytest.mark.anyio
    async def test_click_failure_is_a_result_not_an_exception(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()
        fake_host.on_click = lambda page, arg: {"ok": False, "code": "invalid_selector", "message": "bad css"}
        result = await executor.execute(tab, ClickSelector(selector="div[[["))
        assert not result.ok
        assert result.code == "invalid_selector"
        assert "elapsed_ms" in result.metadata

    @pytest.mark.anyio
    async def test_script_exception_becomes_failure(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()

        def boom(page: dict[str, Any], arg: Any) -> Any:
            raise RuntimeError("Execution context was destroyed")

        fake_host.on_click = boom
        result = await executor.execute(tab, ClickText(text="Go"))
        assert not result.ok
        assert result.code == "script_error"

    @pytest.mark.anyio
    async def test_type_with_selector(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()
        result = await executor.execute(tab, TypeSelector(selector="#name", text="Ada"))
        assert result.ok
        assert result.metadata["resolved_by"] == "selector"
        assert fake_host.count("frames") == 0

    @pytest.mark.anyio
    async def test_type_falls_back_to_heuristic_target(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()
        replies = iter(
            [
                {"ok": False, "code": "not_found", "message": "no #missing"},
                {"ok": True, "mode": "insert_text", "target_kind": "rich"},
            ]
        )
        fake_host.on_type = lambda page, arg: next(replies)
        fake_host.frame_candidates = [[], [{"selector": "#editor", "kind": "rich", "rich": True}]]

        result = await executor.execute(tab, TypeSelector(selector="#missing", text="Dear team"))

        assert result.ok
        assert result.metadata["frame_index"] == 1
        assert result.metadata["resolved_by"] == "heuristic:rich"
        assert ("frame", 1) in fake_host.calls

    @pytest.mark.anyio
    async def test_type_without_candidates(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()
        fake_host.frame_candidates = [[{"selector": "#q", "kind": "search", "search_like": True}]]
        result = await executor.execute(tab, TypeSelector(selector="", text="x" * 300))
        assert not result.ok
        assert result.code == "not_found"
        assert "non-search" in result.message

    @pytest.mark.anyio
    async def test_close_modal_without_modal(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()
        result = await executor.execute(tab, CloseModal())
        assert result.code == "no_modal"

    @pytest.mark.anyio
    async def test_wait_and_done(self, fake_host) -> None:
        slept: list[float] = []

        async def record_sleep(seconds: float) -> None:
            slept.append(seconds)

        executor = ActionExecutor(fake_host, settle_ms=0, sleep=record_sleep)
        tab = await fake_host.create_tab()
        assert (await executor.execute(tab, Wait(ms=250))).ok
        assert slept == [0.25]
        done = await executor.execute(tab, Done(result={"summary": "all set"}))
        assert done.ok and done.mode == "done"
        assert done.metadata["result"]["summary"] == "all set"

    @pytest.mark.anyio
    async def test_settles_after_click(self, fake_host) -> None:
        slept: list[float] = []

        async def record_sleep(seconds: float) -> None:
            slept.append(seconds)

        executor = ActionExecutor(fake_host, settle_ms=450, sleep=record_sleep)
        tab = await fake_host.create_tab()
        await executor.execute(tab, ClickText(text="Go"))
        assert slept == [0.45]

    @pytest.mark.anyio
    async def test_dict_actions_are_validated(self, fake_host, executor) -> None:
        tab = await fake_host.create_tab()
        with pytest.raises(ActionValidationError):
            await executor.execute(tab, {"type": "hover", "selector": "#x"})
        result = await executor.execute(tab, {"type": "click_text", "text": "Go"})
        assert result.ok
