"""Wiring helpers that assemble the agent from settings."""

from __future__ import annotations

from tabpilot.agent.done_checker import DoneCheckerClient
from tabpilot.agent.orchestrator import Orchestrator
from tabpilot.agent.plan_generator import PlanGeneratorClient
from tabpilot.agent.planner import PlannerClient
from tabpilot.browser.host import BrowserHost
from tabpilot.llm.base import LLMProvider
from tabpilot.monitoring.event_bus import EventBus
from tabpilot.runtime.state_store import RuntimeStateStore
from tabpilot.store import KeyValueStore, build_kv_store


def build_state_store(
    bus: EventBus | None = None,
    *,
    kv: KeyValueStore | None = None,
    recover_interrupted: bool = True,
) -> RuntimeStateStore:
    """Create the runtime state store on the configured key-value backend."""
    from tabpilot.settings import get_settings

    return RuntimeStateStore(
        kv or build_kv_store(),
        bus,
        log_capacity=get_settings().agent.log_capacity,
        recover_interrupted=recover_interrupted,
    )


def build_orchestrator(
    host: BrowserHost,
    *,
    state_store: RuntimeStateStore | None = None,
    bus: EventBus | None = None,
    provider: LLMProvider | None = None,
) -> Orchestrator:
    """Create an ``Orchestrator`` with settings-driven clients.

    Args:
        host: Browser capability interface.
        state_store: Existing state store; built from settings when omitted.
        bus: Event bus for the new state store (ignored when ``state_store`` is given).
        provider: Chat provider; ``create_llm_provider()`` when omitted.
    """
    if provider is None:
        from tabpilot.llm.factory import create_llm_provider

        provider = create_llm_provider()
    return Orchestrator.from_settings(
        host,
        state_store or build_state_store(bus),
        PlannerClient.from_settings(provider),
        PlanGeneratorClient.from_settings(provider),
        DoneCheckerClient.from_settings(provider),
    )
