"""Run-loop orchestrator.

Drives one agent run as an explicit state machine over ``RunStatus``:

    reading_browser -> planning -> executing_action -> verifying_action -> reading_browser ...

until the run ends as ``completed``, ``stopped``, ``failed`` or
``paused_max_steps``. Each phase handler returns the next status; every
suspension point (model calls, waits, load polling) is awaited through
the run's ``CancellationToken``.

Recoverable problems (execution errors, verification rejections, done
rejections, repeated failing actions) become a ``StepRecord`` plus a
one-shot feedback string for the next planner call. Capture and planner
failures are fatal and end the run as ``failed``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from tabpilot.agent.completion_gates import DEFAULT_GATES, CompletionGate, run_gates
from tabpilot.agent.done_checker import DoneCheckerClient, DoneVerdict, local_done_check
from tabpilot.agent.plan_generator import PlanGeneratorClient
from tabpilot.agent.planner import PlannerClient, PlannerDecision
from tabpilot.browser.actions import ActionExecutor
from tabpilot.browser.host import BrowserHost, TabHandle
from tabpilot.browser.observation import capture, unscriptable_observation
from tabpilot.browser.verifier import verify_action
from tabpilot.exceptions import (
    NoPendingPlanError,
    RunAlreadyActiveError,
    RunCancelledError,
    RunFailedError,
)
from tabpilot.models.action import Done, DoneResult, action_fingerprint
from tabpilot.models.observation import Observation
from tabpilot.models.results import ExecutionResult, StepOutcome, StepRecord, VerificationResult
from tabpilot.models.runtime import LogKind, PendingPlan, PlanEdit, RunResult, RunSession, RuntimeState
from tabpilot.models.states import TERMINAL_STATES, RunMode, RunStatus
from tabpilot.monitoring.event_bus import EventType
from tabpilot.runtime.cancellation import CancellationToken
from tabpilot.runtime.state_store import RuntimeStateStore
from tabpilot.settings.config import clamp_max_steps

logger = logging.getLogger(__name__)

TAB_GROUP_TITLE = "TabPilot"

# Consecutive repeat-skips after which one cycle is charged against the step
# budget; a planner stuck on a blocked action still exhausts the run. Recorded
# in DESIGN.md under "Repeated-failure guard".
MAX_CONSECUTIVE_SKIPS = 3

ExecutorFactory = Callable[[BrowserHost, CancellationToken], ActionExecutor]


def _default_executor_factory(host: BrowserHost, token: CancellationToken) -> ActionExecutor:
    return ActionExecutor.from_settings(host, sleep=token.sleep)


@dataclass
class ActiveRun:
    """Working state of the run that holds the run slot."""

    session: RunSession
    tab: TabHandle
    budget: int
    token: CancellationToken
    executor: ActionExecutor
    plan: PendingPlan | None = None
    cycles: int = 0
    consecutive_skips: int = 0
    feedback: str = ""
    observation: Observation | None = None
    previous_observation: Observation | None = None
    decision: PlannerDecision | None = None
    exec_result: ExecutionResult | None = None
    done_result: DoneResult | None = None


class Orchestrator:
    """Owns the run loop and exposes the core operations.

    Args:
        host: Browser capability interface.
        state_store: Runtime state store; the orchestrator is its only writer.
        planner: Next-action client.
        plan_generator: Up-front plan client.
        done_checker: Done-claim reviewer.
        max_steps: Default step budget (clamped to 1-200).
        navigation_settle_ms: Pause after a verified step before re-observing.
        repeat_window: History entries inspected by the repeated-failure guard.
        repeat_threshold: Failed occurrences in the window that block an action.
        history_limit: Max history entries kept on a session.
        planner_history: History entries sent to the planner.
        executor_factory: Builds the executor for a run (given host and token).
        gates: Completion gates applied after the done checker accepts.
    """

    def __init__(
        self,
        host: BrowserHost,
        state_store: RuntimeStateStore,
        planner: PlannerClient,
        plan_generator: PlanGeneratorClient,
        done_checker: DoneCheckerClient,
        *,
        max_steps: int = 12,
        navigation_settle_ms: int = 700,
        repeat_window: int = 6,
        repeat_threshold: int = 2,
        history_limit: int = 60,
        planner_history: int = 20,
        executor_factory: ExecutorFactory | None = None,
        gates: tuple[CompletionGate, ...] = DEFAULT_GATES,
    ) -> None:
        self._host = host
        self._state = state_store
        self._planner = planner
        self._plan_generator = plan_generator
        self._done_checker = done_checker
        self.max_steps = clamp_max_steps(max_steps)
        self.navigation_settle_ms = navigation_settle_ms
        self.repeat_window = repeat_window
        self.repeat_threshold = repeat_threshold
        self.history_limit = history_limit
        self.planner_history = planner_history
        self._executor_factory = executor_factory or _default_executor_factory
        self._gates = gates
        self._active: ActiveRun | None = None

        self._phases: dict[RunStatus, Callable[[ActiveRun], Awaitable[RunStatus]]] = {
            RunStatus.READING_BROWSER: self._read_browser,
            RunStatus.PLANNING: self._plan_next,
            RunStatus.EXECUTING_ACTION: self._execute,
            RunStatus.VERIFYING_ACTION: self._verify,
        }

    @classmethod
    def from_settings(
        cls,
        host: BrowserHost,
        state_store: RuntimeStateStore,
        planner: PlannerClient,
        plan_generator: PlanGeneratorClient,
        done_checker: DoneCheckerClient,
    ) -> "Orchestrator":
        """Create an orchestrator using ``agent`` settings."""
        from tabpilot.settings import get_settings

        agent = get_settings().agent
        return cls(
            host,
            state_store,
            planner,
            plan_generator,
            done_checker,
            max_steps=agent.max_steps,
            navigation_settle_ms=agent.navigation_settle_ms,
            repeat_window=agent.repeat_window,
            repeat_threshold=agent.repeat_threshold,
            history_limit=agent.history_limit,
            planner_history=agent.planner_history,
        )

    @property
    def state_store(self) -> RuntimeStateStore:
        return self._state

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def get_runtime_state(self) -> RuntimeState:
        """Return a snapshot of the runtime state."""
        return self._state.snapshot()

    async def generate_plan(
        self,
        goal: str,
        mode: RunMode = RunMode.NEW,
        max_steps: int | None = None,
    ) -> PendingPlan:
        """Produce a reviewable plan for ``goal`` without acting.

        A plan generated for a new goal replaces any plan still pending.

        Raises:
            RunAlreadyActiveError: A run holds the run slot.
            ModelResponseError: The plan model returned an unusable reply.
        """
        goal = _require_goal(goal)
        if self._state.is_running:
            raise RunAlreadyActiveError(self._state.snapshot().session_id)

        await self._state.update(status=RunStatus.PLANNING_RUN, goal=goal, pending_plan=None, last_error="")
        await self._state.log(LogKind.USER, goal, {"mode": mode.value})
        try:
            observation = await self._observe_for_plan(mode)
            plan = await self._plan_generator.generate(goal=goal, observation=observation)
        except Exception as exc:
            logger.error("Plan generation failed: %s", exc)
            if not self._state.is_running:
                await self._state.update(status=RunStatus.FAILED, last_error=f"Plan generation failed: {exc}")
                await self._state.log(LogKind.ERROR, f"Plan generation failed: {exc}")
            raise

        if self._state.is_running:
            # A run took the slot while the plan model was thinking.
            raise RunAlreadyActiveError(self._state.snapshot().session_id)

        plan = plan.model_copy(update={"mode": mode, "max_steps": max_steps})
        await self._state.update(status=RunStatus.AWAITING_PLAN_APPROVAL, pending_plan=plan)
        await self._state.log(
            LogKind.PLAN,
            plan.summary or f"Plan with {len(plan.steps)} step(s)",
            plan.model_dump(mode="json", exclude={"created_at"}),
        )
        return plan

    async def approve_plan(self, edited_plan: PlanEdit | None = None) -> RunResult:
        """Approve the pending plan (optionally edited) and run it to completion.

        Raises:
            NoPendingPlanError: Nothing is awaiting approval.
            RunAlreadyActiveError: A run holds the run slot.
            RunFailedError: The run ended as ``failed``.
        """
        return await self.execute(await self.begin_approved(edited_plan))

    async def run(
        self,
        goal: str,
        mode: RunMode = RunMode.NEW,
        max_steps: int | None = None,
        *,
        plan: PendingPlan | None = None,
    ) -> RunResult:
        """Run ``goal`` until done, stopped, failed or out of steps.

        Raises:
            RunAlreadyActiveError: A run holds the run slot; nothing is mutated.
            RunFailedError: The run ended as ``failed``.
        """
        return await self.execute(await self.begin(goal, mode, max_steps, plan=plan))

    async def request_stop(self) -> bool:
        """Ask the active run to stop at its next suspension point.

        A run owned by another process is signalled through the persisted
        cancel request. Returns False if nothing is running.
        """
        active = self._active
        if active is not None:
            active.token.cancel("Run stopped by user.")
            await self._state.request_cancel()
            await self._state.log(LogKind.USER, "Stop requested")
            logger.info("Stop requested for session %s", active.session.session_id)
            return True
        if self._state.is_running:
            session_id = self._state.snapshot().session_id
            self._state.write_cancel_request(session_id)
            logger.info("Stop request recorded for session %s", session_id or "?")
            return True
        return False

    # ------------------------------------------------------------------
    # Run start
    # ------------------------------------------------------------------

    async def begin_approved(self, edited_plan: PlanEdit | None = None) -> ActiveRun:
        """Take the run slot for the pending plan, applying ``edited_plan`` first.

        Raises:
            NoPendingPlanError: Nothing is awaiting approval.
        """
        pending = self._state.snapshot().pending_plan
        if pending is None:
            raise NoPendingPlanError()
        plan = pending
        if edited_plan is not None:
            edits = edited_plan.model_dump(exclude_none=True)
            if edits:
                plan = PendingPlan.model_validate({**pending.model_dump(), **edits})
        active = await self.begin(plan.goal, plan.mode, plan.max_steps, plan=plan)
        await self._state.log(
            LogKind.PLAN,
            "Plan approved" + (" with edits" if edited_plan is not None else ""),
            {"steps": [s.title for s in plan.steps]},
        )
        return active

    async def begin(
        self,
        goal: str,
        mode: RunMode = RunMode.NEW,
        max_steps: int | None = None,
        *,
        plan: PendingPlan | None = None,
    ) -> ActiveRun:
        """Take the run slot and bind the run to its tab.

        The slot is claimed before anything else is touched, so a refused
        start leaves the active run's state unchanged.

        Raises:
            RunAlreadyActiveError: A run holds the run slot.
            RunFailedError: The tab could not be created or reattached.
        """
        goal = _require_goal(goal)
        budget = clamp_max_steps(max_steps if max_steps is not None else self.max_steps)

        previous = self._state.load_session() if mode == RunMode.CONTINUE else None
        session = previous.model_copy(deep=True) if previous is not None else RunSession()
        session.goal = goal
        if plan is not None:
            session.approved_plan = plan

        await self._state.acquire(
            goal=goal,
            session_id=session.session_id,
            tab_id=session.tab_id,
            tab_group_id=session.tab_group_id,
        )
        token = CancellationToken()
        await self._state.log(LogKind.USER, goal, {"mode": mode.value, "max_steps": budget})
        if mode == RunMode.CONTINUE and previous is None:
            await self._state.log(LogKind.SYSTEM, "No previous session to continue; starting a new one")

        try:
            tab = await self._bind_tab(session, reattach=previous is not None)
        except Exception as exc:
            logger.error("Could not prepare a tab for session %s: %s", session.session_id, exc)
            message = f"Could not open a browser tab: {exc}"
            await self._state.log(LogKind.ERROR, message)
            await self._state.release(RunStatus.FAILED, last_error=message)
            raise RunFailedError(message, self._state.snapshot()) from exc

        self._state.save_session(session)
        await self._state.update(
            tab_id=session.tab_id,
            tab_group_id=session.tab_group_id,
            step=session.step,
            status=RunStatus.RUNNING,
        )
        active = ActiveRun(
            session=session,
            tab=tab,
            budget=budget,
            token=token,
            executor=self._executor_factory(self._host, token),
            plan=session.approved_plan,
        )
        self._active = active
        await self._emit(EventType.RUN_STARTED, active, {"goal": goal, "mode": mode.value, "budget": budget})
        logger.info(
            "Run %s started (mode=%s, budget=%d, tab=%s)", session.session_id, mode.value, budget, session.tab_id
        )
        return active

    async def _bind_tab(self, session: RunSession, *, reattach: bool) -> TabHandle:
        if reattach and session.tab_id:
            tab = await self._host.get_tab(session.tab_id)
            if tab is not None:
                await self._state.log(LogKind.SYSTEM, f"Continuing in tab {tab.tab_id}", {"url": tab.url})
                return tab
            await self._state.log(LogKind.SYSTEM, "Previous tab is gone; opening a new one")

        tab = await self._host.create_tab()
        session.tab_id = tab.tab_id
        try:
            session.tab_group_id = await self._host.group_tabs([tab], TAB_GROUP_TITLE)
        except Exception as exc:
            logger.warning("Tab grouping failed: %s", exc)
            session.tab_group_id = ""
        await self._state.log(LogKind.SYSTEM, f"Opened tab {tab.tab_id}", {"tab_group_id": session.tab_group_id})
        return tab

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def execute(self, active: ActiveRun) -> RunResult:
        """Drive ``active`` through the state machine and finalize it.

        Raises:
            RunFailedError: The run ended as ``failed``.
        """
        session = active.session
        try:
            status = RunStatus.READING_BROWSER
            while status not in TERMINAL_STATES:
                await self._state.set_status(status)
                status = await self._phases[status](active)
            return await self._finish(active, status)
        except RunCancelledError as exc:
            message = str(exc) or "Run stopped by user."
            await self._state.log(LogKind.SYSTEM, message)
            await self._state.release(RunStatus.STOPPED, last_error="")
            await self._emit(EventType.RUN_FINISHED, active, {"status": RunStatus.STOPPED.value})
            logger.info("Run %s stopped at step %d", session.session_id, session.step)
            return RunResult(
                status=RunStatus.STOPPED,
                session_id=session.session_id,
                tab_id=session.tab_id,
                step=session.step,
                message=message,
            )
        except asyncio.CancelledError:
            message = "Run interrupted: task cancelled."
            logger.warning("Run %s cancelled at step %d", session.session_id, session.step)
            await self._state.log(LogKind.SYSTEM, message)
            await self._state.release(RunStatus.STOPPED, last_error=message)
            await self._emit(EventType.RUN_FINISHED, active, {"status": RunStatus.STOPPED.value})
            raise
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error("Run %s failed at step %d: %s", session.session_id, session.step, message)
            await self._state.log(LogKind.ERROR, message, {"error_type": type(exc).__name__})
            await self._state.release(RunStatus.FAILED, last_error=message)
            await self._emit(EventType.RUN_FINISHED, active, {"status": RunStatus.FAILED.value, "error": message})
            raise RunFailedError(message, self._state.snapshot()) from exc
        finally:
            self._state.save_session(session)
            self._active = None

    async def _finish(self, active: ActiveRun, status: RunStatus) -> RunResult:
        session = active.session
        if status == RunStatus.COMPLETED:
            result = active.done_result or DoneResult()
            await self._state.release(RunStatus.COMPLETED, last_result=result.model_dump(mode="json"))
            message = result.summary
        else:
            message = f"Step budget of {active.budget} reached; continue the session to resume."
            await self._state.log(LogKind.SYSTEM, message, {"step": session.step})
            await self._state.release(RunStatus.PAUSED_MAX_STEPS)
        await self._emit(EventType.RUN_FINISHED, active, {"status": status.value, "step": session.step})
        logger.info("Run %s finished: %s after %d step(s)", session.session_id, status.value, active.cycles)
        return RunResult(
            status=status,
            session_id=session.session_id,
            tab_id=session.tab_id,
            step=session.step,
            result=active.done_result if status == RunStatus.COMPLETED else None,
            message=message,
        )

    async def _check_cancel(self, active: ActiveRun) -> None:
        if not active.token.cancelled and (self._state.cancel_requested or self._state.take_cancel_request()):
            active.token.cancel("Run stopped by user.")
        active.token.raise_if_cancelled()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _read_browser(self, active: ActiveRun) -> RunStatus:
        await self._check_cancel(active)
        if active.cycles >= active.budget:
            return RunStatus.PAUSED_MAX_STEPS

        observation = await self._capture(active)
        if active.observation is not None:
            active.previous_observation = active.observation
        active.observation = observation
        return RunStatus.PLANNING

    async def _plan_next(self, active: ActiveRun) -> RunStatus:
        assert active.observation is not None
        session = active.session
        feedback, active.feedback = active.feedback, ""
        decision = await active.token.guard(
            self._planner.next_action(
                goal=session.goal,
                step=session.step + 1,
                observation=active.observation,
                history=session.history[-self.planner_history :] if self.planner_history > 0 else [],
                feedback=feedback,
                plan=active.plan,
            )
        )
        action = decision.action
        fingerprint = action_fingerprint(action)
        await self._state.log(
            LogKind.PLANNER,
            decision.thought or f"Next action: {action.type}",
            {
                "action": action.model_dump(mode="json"),
                "fingerprint": fingerprint,
                "input_tokens": decision.input_tokens,
                "output_tokens": decision.output_tokens,
            },
        )

        failures = self._recent_failures(session.history, fingerprint)
        if failures >= self.repeat_threshold:
            active.feedback = (
                f"Do not repeat {action.type} on this target ({fingerprint}): it already failed {failures} times "
                "in recent steps. Choose a different target or approach."
            )
            active.consecutive_skips += 1
            await self._state.log(
                LogKind.SYSTEM,
                f"Skipped repeated failing action {fingerprint}",
                {"outcome": StepOutcome.SKIPPED_REPEAT.value, "failures": failures},
            )
            logger.info("Skipping repeated failing action %s (%d failures)", fingerprint, failures)
            if active.consecutive_skips >= MAX_CONSECUTIVE_SKIPS:
                # A run of skips counts as one cycle against the budget.
                active.consecutive_skips = 0
                active.cycles += 1
                return RunStatus.READING_BROWSER
            return RunStatus.PLANNING

        active.consecutive_skips = 0
        active.decision = decision
        return RunStatus.EXECUTING_ACTION

    async def _execute(self, active: ActiveRun) -> RunStatus:
        assert active.decision is not None and active.observation is not None
        session = active.session
        action = active.decision.action
        active.cycles += 1
        session.step += 1
        await self._state.update(step=session.step)

        try:
            result = await active.executor.execute(active.tab, action)
        except RunCancelledError:
            raise
        except Exception as exc:
            logger.warning("Executing %s raised: %s", action.type, exc)
            result = ExecutionResult.failure("execution_error", f"{action.type} raised: {exc}")

        active.exec_result = result
        await self._state.log(
            LogKind.ACTION,
            result.message or f"{action.type} {'ok' if result.ok else 'failed'}",
            {"type": action.type, "ok": result.ok, "code": result.code, "mode": result.mode, **result.metadata},
        )
        if not result.ok:
            self._record(active, StepOutcome.EXECUTION_FAILED, observed_url=active.observation.url)
            active.feedback = (
                f"Previous action {action.type} failed ({result.code or 'error'}): {result.message}. "
                "Pick a different target or approach."
            )
            return RunStatus.READING_BROWSER
        return RunStatus.VERIFYING_ACTION

    async def _verify(self, active: ActiveRun) -> RunStatus:
        assert active.decision is not None and active.observation is not None and active.exec_result is not None
        action = active.decision.action
        before = active.observation

        if isinstance(action, Done):
            after = before
        else:
            after = await self._capture(active)
            active.previous_observation, active.observation = before, after

        verification = verify_action(action, before, after, active.exec_result)
        await self._state.log(
            LogKind.VERIFY,
            verification.message or verification.code.value,
            {"ok": verification.ok, "code": verification.code.value, **verification.details},
        )
        if not verification.ok:
            self._record(active, StepOutcome.VERIFICATION_REJECTED, observed_url=after.url, verification=verification)
            active.feedback = (
                f"Previous action {action.type} was rejected by verification "
                f"({verification.code.value}): {verification.message}"
            )
            return RunStatus.READING_BROWSER

        record = self._record(active, StepOutcome.OK, observed_url=after.url, verification=verification)

        if isinstance(action, Done):
            verdict = await self._check_done(active, action.result, before)
            if not verdict.accept:
                record.outcome = StepOutcome.DONE_REJECTED
                active.feedback = f"Done was rejected: {verdict.reason}"
                if verdict.guidance:
                    active.feedback += f" Guidance: {verdict.guidance}"
                return RunStatus.READING_BROWSER
            active.done_result = action.result
            return RunStatus.COMPLETED

        self._state.save_session(active.session)
        if self.navigation_settle_ms > 0:
            await active.token.sleep(self.navigation_settle_ms / 1000)
        return RunStatus.READING_BROWSER

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _check_done(self, active: ActiveRun, result: DoneResult, at_done: Observation) -> DoneVerdict:
        session = active.session
        before = active.previous_observation or at_done
        try:
            verdict = await active.token.guard(
                self._done_checker.check(
                    goal=session.goal,
                    done_result=result,
                    observation_before=before,
                    observation_at_done=at_done,
                    history=session.history,
                )
            )
        except RunCancelledError:
            raise
        except Exception as exc:
            logger.warning("Done checker unavailable (%s); falling back to local summary check", exc)
            verdict = local_done_check(result)
            await self._state.log(
                LogKind.SYSTEM,
                "Done checker unavailable; used local summary check",
                {"fallback": True, "error": str(exc), "accept": verdict.accept},
            )

        if verdict.accept:
            rejection = run_gates(session.goal, at_done, self._gates)
            if rejection:
                verdict = DoneVerdict(accept=False, reason=rejection, fallback=verdict.fallback)

        await self._state.log(
            LogKind.DONE,
            ("Accepted: " if verdict.accept else "Rejected: ") + (verdict.reason or result.summary),
            {"accept": verdict.accept, "guidance": verdict.guidance, "fallback": verdict.fallback},
        )
        return verdict

    async def _capture(self, active: ActiveRun) -> Observation:
        observation = await capture(self._host, active.tab)
        await self._state.log(
            LogKind.OBSERVATION,
            f"{observation.page_kind.value}: {observation.title or observation.url}",
            {
                "url": observation.url,
                "page_hash": observation.page_hash,
                "form_state_hash": observation.form_state_hash,
                "interactive": len(observation.interactive),
                "editable": len(observation.editable),
                "modal": observation.has_modal,
            },
        )
        return observation

    async def _observe_for_plan(self, mode: RunMode) -> Observation:
        tab: TabHandle | None = None
        if mode == RunMode.CONTINUE:
            session = self._state.load_session()
            if session is not None and session.tab_id:
                tab = await self._host.get_tab(session.tab_id)
        if tab is None:
            tab = await self._host.get_active_tab()
        if tab is None:
            return unscriptable_observation("about:blank")
        return await capture(self._host, tab)

    def _recent_failures(self, history: list[StepRecord], fingerprint: str) -> int:
        window = history[-self.repeat_window :] if self.repeat_window > 0 else []
        return sum(1 for record in window if record.fingerprint == fingerprint and record.failed)

    def _record(
        self,
        active: ActiveRun,
        outcome: StepOutcome,
        *,
        observed_url: str,
        verification: VerificationResult | None = None,
    ) -> StepRecord:
        assert active.decision is not None and active.exec_result is not None
        session = active.session
        action = active.decision.action
        record = StepRecord(
            step=session.step,
            action=action,
            fingerprint=action_fingerprint(action),
            exec_result=active.exec_result,
            observed_url=observed_url,
            outcome=outcome,
            verification=verification,
        )
        session.history.append(record)
        if self.history_limit > 0 and len(session.history) > self.history_limit:
            del session.history[: -self.history_limit]
        return record

    async def _emit(self, event_type: EventType, active: ActiveRun, data: dict) -> None:
        bus = self._state.bus
        if bus is None:
            return
        try:
            await bus.emit(event_type, data, session_id=active.session.session_id)
        except Exception as exc:
            logger.debug("Event %s not delivered: %s", event_type.value, exc)


def _require_goal(goal: str) -> str:
    goal = (goal or "").strip()
    if not goal:
        raise ValueError("A goal is required.")
    return goal
