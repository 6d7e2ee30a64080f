"""Wiring helpers that assemble the agent loop from persisted settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from .ai.client import ClientSettings, ReasoningClient
from .ai.orchestration.conversation import ConversationRegistry
from .ai.orchestration.orchestrator import AgentLoop, AgentLoopConfig, ReasoningEngine
from .ai.orchestration.tool_dispatcher import ToolDispatcher
from .ai.services.context_policy import ContextBudgetPolicy
from .ai.services.summarizer import HistorySummarizer
from .ai.tools.errors import NotConfiguredError
from .services.settings import Settings, SettingsStore, redact_secret
from .services.sheets import ResourceClient, ResourceHandle, SheetsClient, SheetsClientSettings
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    """Agent loop plus the outbound clients it owns."""

    agent: AgentLoop
    engine: ReasoningEngine
    resource_client: ResourceClient
    settings: Settings

    def handle_for(self, spreadsheet_id: str) -> ResourceHandle:
        return ResourceHandle(spreadsheet_id=spreadsheet_id, client=self.resource_client)

    async def aclose(self) -> None:
        for client in (self.engine, self.resource_client):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()


def configure_logging(debug: bool = False, *, force: bool = False, log_dir: Path | str | None = None) -> Path:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, log_dir=log_dir, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def client_settings_from(settings: Settings) -> ClientSettings:
    return ClientSettings(
        base_url=settings.base_url,
        api_key=settings.api_key,
        model=settings.model,
        organization=settings.organization,
        temperature=settings.temperature,
        max_output_tokens=settings.response_token_reserve,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        default_headers=dict(settings.default_headers) or None,
        debug_logging=settings.debug_logging,
    )


def sheets_settings_from(settings: Settings) -> SheetsClientSettings:
    return SheetsClientSettings(
        access_token=settings.sheets_access_token,
        base_url=settings.sheets_base_url,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
    )


def build_sheets_client(settings: Settings) -> SheetsClient:
    """Create the Sheets client, authenticating as the stored service account if any."""

    client = SheetsClient(sheets_settings_from(settings))
    if settings.sheets_service_account_json:
        try:
            client.configure(settings.sheets_service_account_json)
        except NotConfiguredError as exc:
            _LOGGER.warning("Ignoring Sheets service account: %s", exc.message)
    return client


def build_agent(
    settings: Settings,
    *,
    engine: ReasoningEngine | None = None,
    dispatcher: ToolDispatcher | None = None,
) -> AgentLoop:
    """Assemble an :class:`AgentLoop` whose budgets come from ``settings``."""

    active_engine = engine or ReasoningClient(client_settings_from(settings))
    policy = ContextBudgetPolicy.from_settings(
        settings.context_policy,
        max_context_tokens=settings.max_context_tokens,
        response_token_reserve=settings.response_token_reserve,
    )
    summarizer = HistorySummarizer(
        active_engine,
        summary_budget_tokens=policy.summary_budget,
        summary_reserve_tokens=policy.summary_reserve,
    )
    registry = ConversationRegistry(
        policy=policy,
        summarizer=summarizer,
        default_conversation_id=settings.default_conversation_id,
    )
    _LOGGER.info(
        "Agent configured for model %s at %s (key %s, prompt budget %s tokens)",
        settings.model,
        settings.base_url,
        redact_secret(settings.api_key) or "<unset>",
        policy.prompt_budget,
    )
    return AgentLoop(
        engine=active_engine,
        registry=registry,
        dispatcher=dispatcher,
        config=AgentLoopConfig(
            max_iterations=settings.max_tool_iterations,
            max_response_tokens=settings.response_token_reserve,
        ),
    )


def build_runtime(
    settings: Settings,
    *,
    engine: ReasoningEngine | None = None,
    resource_client: ResourceClient | None = None,
) -> Runtime:
    """Build the agent together with its reasoning and spreadsheet clients."""

    active_engine = engine or ReasoningClient(client_settings_from(settings))
    active_resource = resource_client or build_sheets_client(settings)
    agent = build_agent(settings, engine=active_engine)
    return Runtime(agent=agent, engine=active_engine, resource_client=active_resource, settings=settings)


__all__ = [
    "Runtime",
    "build_agent",
    "build_runtime",
    "build_sheets_client",
    "client_settings_from",
    "configure_logging",
    "load_settings",
    "sheets_settings_from",
]
