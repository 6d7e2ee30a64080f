"""Contract tests for the Google Sheets REST client using httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from sheetpilot.ai.tools.errors import InvalidRangeError, NotConfiguredError, ResourceError, SheetNotFoundError
from sheetpilot.services.sheets import SheetsClient, SheetsClientSettings
from tests.helpers import service_account_info

Handler = Callable[[httpx.Request], httpx.Response]

_METADATA = {
    "spreadsheetId": "abc",
    "properties": {"title": "Budget"},
    "sheets": [
        {"properties": {"title": "Summary", "sheetId": 0, "gridProperties": {"rowCount": 10, "columnCount": 5}}},
        {"properties": {"title": "Data", "sheetId": 7, "gridProperties": {"rowCount": 500, "columnCount": 12}}},
    ],
}


def _client(handler: Handler, *, token: str = "ya29.token", max_retries: int = 3) -> SheetsClient:
    transport = httpx.MockTransport(handler)
    http_client = httpx.AsyncClient(transport=transport, base_url="https://sheets.test/v4/")
    settings = SheetsClientSettings(
        access_token=token,
        base_url="https://sheets.test/v4/",
        max_retries=max_retries,
        retry_min_seconds=0,
        retry_max_seconds=0,
    )
    return SheetsClient(settings, http_client=http_client)


@pytest.mark.asyncio
async def test_read_range_sends_bearer_token_and_normalizes_values() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"range": "Sheet1!A1:B2", "majorDimension": "ROWS", "values": [["a", "b"]]})

    client = _client(handler)
    result = await client.read_range("abc", "Sheet1!A1:B2")

    assert result == {"values": [["a", "b"]], "range": "Sheet1!A1:B2"}
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/v4/spreadsheets/abc/values/Sheet1!A1:B2"
    assert request.headers["Authorization"] == "Bearer ya29.token"


@pytest.mark.asyncio
async def test_read_range_of_empty_cells_returns_empty_values() -> None:
    client = _client(lambda request: httpx.Response(200, json={"range": "Sheet1!C1:C4"}))

    assert await client.read_range("abc", "Sheet1!C1:C4") == {"values": [], "range": "Sheet1!C1:C4"}


@pytest.mark.asyncio
async def test_write_range_puts_rows_with_input_option() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"updatedRange": "Sheet1!A1:B1", "updatedRows": 1, "updatedColumns": 2, "updatedCells": 2},
        )

    client = _client(handler)
    result = await client.write_range("abc", "Sheet1!A1:B1", [["x", 1]], "RAW")

    assert result == {"updatedCells": 2, "updatedRows": 1, "updatedColumns": 2, "updatedRange": "Sheet1!A1:B1"}
    request = seen[0]
    assert request.method == "PUT"
    assert request.url.params["valueInputOption"] == "RAW"
    assert json.loads(request.content) == {"range": "Sheet1!A1:B1", "majorDimension": "ROWS", "values": [["x", 1]]}


@pytest.mark.asyncio
async def test_append_row_inserts_rows_and_reads_updates() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"updates": {"updatedRange": "Sheet1!A5:C5", "updatedRows": 1, "updatedCells": 3}},
        )

    client = _client(handler)
    result = await client.append_row("abc", "Sheet1!A:C", ["a", 2, True])

    assert result == {"updatedCells": 3, "updatedRows": 1, "updatedRange": "Sheet1!A5:C5"}
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path.endswith("/values/Sheet1!A:C:append")
    assert request.url.params["insertDataOption"] == "INSERT_ROWS"
    assert request.url.params["valueInputOption"] == "USER_ENTERED"
    assert json.loads(request.content) == {"values": [["a", 2, True]]}


@pytest.mark.asyncio
async def test_clear_range_returns_cleared_range() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith(":clear")
        return httpx.Response(200, json={"spreadsheetId": "abc", "clearedRange": "Sheet1!A1:B9"})

    client = _client(handler)

    assert await client.clear_range("abc", "Sheet1!A1:B9") == {"clearedRange": "Sheet1!A1:B9"}


@pytest.mark.asyncio
async def test_get_metadata_flattens_sheet_properties() -> None:
    client = _client(lambda request: httpx.Response(200, json=_METADATA))

    metadata = await client.get_metadata("abc")

    assert metadata["title"] == "Budget"
    assert metadata["sheets"][1] == {
        "title": "Data",
        "sheetId": 7,
        "gridProperties": {"rowCount": 500, "columnCount": 12},
    }


@pytest.mark.asyncio
async def test_test_connection_reports_title() -> None:
    client = _client(lambda request: httpx.Response(200, json=_METADATA))

    assert await client.test_connection("abc") == {"success": True, "title": "Budget", "spreadsheetId": "abc"}


@pytest.mark.asyncio
async def test_create_chart_resolves_sheet_and_builds_series_per_column() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json=_METADATA)
        return httpx.Response(200, json={"replies": [{"addChart": {"chart": {"chartId": 99}}}]})

    client = _client(handler)
    result = await client.create_chart("abc", {"dataSourceRange": "Data!A1:C10", "chartType": "COLUMN", "title": "Sales"})

    assert result == {"chartId": 99, "success": True}
    batch = seen[-1]
    assert batch.url.path == "/v4/spreadsheets/abc:batchUpdate"
    chart = json.loads(batch.content)["requests"][0]["addChart"]["chart"]
    basic = chart["spec"]["basicChart"]
    assert chart["spec"]["title"] == "Sales"
    assert basic["chartType"] == "COLUMN"
    assert basic["legendPosition"] == "BOTTOM_LEGEND"
    assert basic["headerCount"] == 1
    assert basic["domains"][0]["domain"]["sourceRange"]["sources"] == [
        {"sheetId": 7, "startRowIndex": 0, "endRowIndex": 10, "startColumnIndex": 0, "endColumnIndex": 1}
    ]
    series_columns = [
        (entry["series"]["sourceRange"]["sources"][0]["startColumnIndex"], entry["targetAxis"]) for entry in basic["series"]
    ]
    assert series_columns == [(1, "LEFT_AXIS"), (2, "LEFT_AXIS")]
    anchor = chart["position"]["overlayPosition"]["anchorCell"]
    assert anchor == {"sheetId": 7, "rowIndex": 0, "columnIndex": 4}


@pytest.mark.asyncio
async def test_create_chart_with_explicit_sheet_id_skips_metadata() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"replies": [{}]})

    client = _client(handler)
    result = await client.create_chart(
        "abc",
        {"dataSourceRange": "A1:B5", "chartType": "LINE", "sheetId": 0, "position": {"rowIndex": 3, "columnIndex": 0}},
    )

    assert result == {"chartId": None, "success": True}
    assert [request.method for request in seen] == ["POST"]
    anchor = json.loads(seen[0].content)["requests"][0]["addChart"]["chart"]["position"]["overlayPosition"]["anchorCell"]
    assert anchor == {"sheetId": 0, "rowIndex": 3, "columnIndex": 0}


@pytest.mark.asyncio
async def test_create_chart_rejects_single_column_and_bad_ranges() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be reached
        raise AssertionError("no request expected")

    client = _client(handler)

    with pytest.raises(InvalidRangeError) as single:
        await client.create_chart("abc", {"dataSourceRange": "A1:A10", "chartType": "LINE"})
    assert "at least one data column" in single.value.message

    with pytest.raises(InvalidRangeError) as malformed:
        await client.create_chart("abc", {"dataSourceRange": "A:C", "chartType": "LINE"})
    assert "Invalid range format: A:C. Expected format: A1:C10" in malformed.value.message


@pytest.mark.asyncio
async def test_create_chart_unknown_sheet_raises() -> None:
    client = _client(lambda request: httpx.Response(200, json=_METADATA))

    with pytest.raises(SheetNotFoundError) as excinfo:
        await client.create_chart("abc", {"dataSourceRange": "Missing!A1:B2", "chartType": "BAR"})
    assert excinfo.value.message == 'Failed to create chart: Sheet "Missing" not found'


@pytest.mark.asyncio
async def test_transient_status_is_retried() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(429, json={"error": {"message": "Quota exceeded"}})
        return httpx.Response(200, json={"range": "A1:A1", "values": [["ok"]]})

    client = _client(handler)
    result = await client.read_range("abc", "A1:A1")

    assert result["values"] == [["ok"]]
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_raise_resource_error() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(503, json={"error": {"message": "Backend unavailable"}})

    client = _client(handler, max_retries=2)

    with pytest.raises(ResourceError) as excinfo:
        await client.read_range("abc", "A1:A1")
    assert excinfo.value.status_code == 503
    assert excinfo.value.message == "Failed to read range: Backend unavailable"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(400, json={"error": {"code": 400, "message": "Unable to parse range: Nope!A1"}})

    client = _client(handler)

    with pytest.raises(ResourceError) as excinfo:
        await client.read_range("abc", "Nope!A1")
    assert excinfo.value.message == "Failed to read range: Unable to parse range: Nope!A1"
    assert excinfo.value.status_code == 400
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_missing_token_raises_not_configured() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be reached
        raise AssertionError("no request expected")

    client = _client(handler, token="")

    assert client.is_configured() is False
    with pytest.raises(NotConfiguredError):
        await client.read_range("abc", "A1:B2")


@pytest.mark.asyncio
async def test_service_account_tokens_authenticate_requests() -> None:
    token_requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth.test":
            token_requests.append(request)
            return httpx.Response(200, json={"access_token": "ya29.service", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer ya29.service"
        return httpx.Response(200, json={"range": "Sheet1!A1", "values": [["ok"]]})

    client = _client(handler, token="")
    assert client.is_configured() is False

    credentials = client.configure(json.dumps(service_account_info()))
    first = await client.read_range("abc", "Sheet1!A1")
    await client.read_range("abc", "Sheet1!A1")

    assert client.is_configured() is True
    assert credentials.client_email == "agent@sheetpilot-test.iam.gserviceaccount.com"
    assert first["values"] == [["ok"]]
    assert len(token_requests) == 1


def test_configure_rejects_bad_service_account_and_stays_unconfigured() -> None:
    client = _client(lambda request: httpx.Response(200, json={}), token="")

    with pytest.raises(NotConfiguredError) as excinfo:
        client.configure({"client_email": "agent@example.com", "private_key": "garbage"})

    assert excinfo.value.message.startswith("Failed to configure Google Sheets:")
    assert client.is_configured() is False


@pytest.mark.asyncio
async def test_failed_token_exchange_surfaces_as_resource_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth.test":
            return httpx.Response(401, json={"error": "unauthorized_client"})
        raise AssertionError("Sheets must not be called without a token")

    client = _client(handler, token="")
    client.configure(service_account_info())

    with pytest.raises(ResourceError) as excinfo:
        await client.read_range("abc", "A1")

    assert excinfo.value.message == "Failed to authenticate with Google: unauthorized_client"
    assert excinfo.value.status_code == 401
