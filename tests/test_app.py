"""Tests for application wiring."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

import pytest

from sheetpilot import app
from sheetpilot.ai.client import ReasoningClient
from sheetpilot.ai.orchestration.types import MessageResult
from sheetpilot.services.settings import ContextPolicySettings, Settings, SettingsStore
from sheetpilot.services.sheets import SheetsClient
from tests.helpers import FakeReasoningEngine, FakeResourceClient, service_account_info, text_response


class _BrokenStore(SettingsStore):
    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        raise OSError("disk unavailable")


def test_load_settings_falls_back_to_defaults(tmp_path: Path) -> None:
    store = _BrokenStore(tmp_path / "settings.json")

    assert app.load_settings(store=store) == Settings()


def test_client_settings_mirror_persisted_settings() -> None:
    settings = Settings(api_key="sk-abc", model="gpt-x", response_token_reserve=2_048, sheets_access_token="tok")

    client_settings = app.client_settings_from(settings)
    sheets_settings = app.sheets_settings_from(settings)

    assert client_settings.model == "gpt-x"
    assert client_settings.max_output_tokens == 2_048
    assert client_settings.default_headers is None
    assert sheets_settings.access_token == "tok"
    assert sheets_settings.base_url == "https://sheets.googleapis.com/v4/"


def test_build_agent_applies_budgets_from_settings() -> None:
    settings = Settings(
        max_tool_iterations=4,
        max_context_tokens=20_000,
        response_token_reserve=1_000,
        default_conversation_id="main",
        context_policy=ContextPolicySettings(summary_reserve_tokens=500),
    )

    agent = app.build_agent(settings, engine=FakeReasoningEngine())

    assert agent.config.max_iterations == 4
    assert agent.config.max_response_tokens == 1_000
    assert agent.registry.default_conversation_id == "main"


def test_build_runtime_creates_real_clients_when_not_injected() -> None:
    runtime = app.build_runtime(Settings(api_key="sk-test"))

    assert isinstance(runtime.engine, ReasoningClient)
    assert isinstance(runtime.resource_client, SheetsClient)


def test_sheets_client_authenticates_as_stored_service_account() -> None:
    client = app.build_sheets_client(Settings(sheets_service_account_json=json.dumps(service_account_info())))

    assert client.is_configured() is True


def test_invalid_service_account_is_logged_and_ignored(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="sheetpilot.app"):
        client = app.build_sheets_client(Settings(sheets_service_account_json="{not json"))

    assert client.is_configured() is False
    assert "Ignoring Sheets service account" in caplog.text


@pytest.mark.asyncio
async def test_runtime_runs_a_turn_end_to_end() -> None:
    engine = FakeReasoningEngine([text_response("Hi there")])
    runtime = app.build_runtime(Settings(), engine=engine, resource_client=FakeResourceClient())

    result = await runtime.agent.handle_user_message("hello", resource_handle=runtime.handle_for("sheet-1"))
    await runtime.aclose()

    assert isinstance(result, MessageResult)
    assert result.text == "Hi there"
    assert runtime.agent.registry.get("default").resource_handle.spreadsheet_id == "sheet-1"


def test_configure_logging_uses_requested_directory(tmp_path: Path) -> None:
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level
    try:
        path = app.configure_logging(debug=True, force=True, log_dir=tmp_path)
        assert path == tmp_path / "sheetpilot.log"
        assert root.level == logging.DEBUG
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous_handlers:
            root.addHandler(handler)
        root.setLevel(previous_level)
