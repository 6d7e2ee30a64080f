"""Async Google Sheets v4 REST client used by the tool dispatcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..ai.tools.errors import InvalidRangeError, NotConfiguredError, ResourceError, SheetNotFoundError
from ..core.ranges import GridRange
from .google_auth import ServiceAccountCredentials, ServiceAccountTokenSource

LOGGER = logging.getLogger(__name__)

DEFAULT_SHEETS_BASE_URL = "https://sheets.googleapis.com/v4/"
DEFAULT_VALUE_INPUT_OPTION = "USER_ENTERED"
DEFAULT_LEGEND_POSITION = "BOTTOM_LEGEND"


class ResourceClient(Protocol):
    """Operations the agent may perform against a spreadsheet."""

    async def read_range(self, spreadsheet_id: str, range: str) -> dict[str, Any]:
        ...

    async def write_range(
        self,
        spreadsheet_id: str,
        range: str,
        values: Sequence[Sequence[Any]],
        value_input_option: str = DEFAULT_VALUE_INPUT_OPTION,
    ) -> dict[str, Any]:
        ...

    async def append_row(
        self,
        spreadsheet_id: str,
        range: str,
        values: Sequence[Any],
        value_input_option: str = DEFAULT_VALUE_INPUT_OPTION,
    ) -> dict[str, Any]:
        ...

    async def clear_range(self, spreadsheet_id: str, range: str) -> dict[str, Any]:
        ...

    async def get_metadata(self, spreadsheet_id: str) -> dict[str, Any]:
        ...

    async def create_chart(self, spreadsheet_id: str, options: Mapping[str, Any]) -> dict[str, Any]:
        ...

    async def test_connection(self, spreadsheet_id: str) -> dict[str, Any]:
        ...


@dataclass(slots=True, frozen=True)
class ResourceHandle:
    """Spreadsheet a conversation operates on, plus the client that reaches it."""

    spreadsheet_id: str
    client: ResourceClient


@dataclass(slots=True)
class SheetsClientSettings:
    access_token: str = ""
    base_url: str = DEFAULT_SHEETS_BASE_URL
    request_timeout: float | None = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0


class _TransientStatusError(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def _should_retry_status(status_code: int) -> bool:
    if status_code in {408, 429}:
        return True
    return 500 <= status_code <= 599


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    text = response.text.strip()
    return text or f"HTTP {response.status_code}"


class SheetsClient:
    """Google Sheets client speaking the v4 REST API over ``httpx``.

    Requests authenticate with a service account once :meth:`configure` has
    been called, and with the ``access_token`` from the settings otherwise.
    """

    def __init__(
        self,
        settings: SheetsClientSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
        token_source: ServiceAccountTokenSource | None = None,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._owns_client = http_client is None
        self._token_source = token_source

    @property
    def settings(self) -> SheetsClientSettings:
        return self._settings

    def is_configured(self) -> bool:
        return self._token_source is not None or bool(self._settings.access_token)

    def configure(self, service_account: Mapping[str, Any] | str) -> ServiceAccountCredentials:
        """Authenticate future requests as the given service account.

        ``service_account`` is the key file contents, parsed or as JSON text.
        The key is checked by signing a first assertion.

        Raises:
            NotConfiguredError: the key file is malformed or the key cannot sign.
        """

        credentials = ServiceAccountCredentials.from_info(service_account)
        credentials.assertion()
        previous = self._token_source
        # Token requests use absolute URLs, so they share the Sheets connection pool.
        self._token_source = ServiceAccountTokenSource(credentials, http_client=self._http())
        if previous is not None:
            LOGGER.info("Replacing Sheets service account %s", previous.credentials.client_email)
        LOGGER.info("Sheets client configured for service account %s", credentials.client_email)
        return credentials

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------
    async def read_range(self, spreadsheet_id: str, range: str) -> dict[str, Any]:
        payload = await self._request(
            "GET",
            self._values_path(spreadsheet_id, range),
            action="read range",
        )
        return {"values": payload.get("values") or [], "range": payload.get("range")}

    async def write_range(
        self,
        spreadsheet_id: str,
        range: str,
        values: Sequence[Sequence[Any]],
        value_input_option: str = DEFAULT_VALUE_INPUT_OPTION,
    ) -> dict[str, Any]:
        payload = await self._request(
            "PUT",
            self._values_path(spreadsheet_id, range),
            action="write range",
            params={"valueInputOption": value_input_option},
            json={"range": range, "majorDimension": "ROWS", "values": [list(row) for row in values]},
        )
        return {
            "updatedCells": payload.get("updatedCells"),
            "updatedRows": payload.get("updatedRows"),
            "updatedColumns": payload.get("updatedColumns"),
            "updatedRange": payload.get("updatedRange"),
        }

    async def append_row(
        self,
        spreadsheet_id: str,
        range: str,
        values: Sequence[Any],
        value_input_option: str = DEFAULT_VALUE_INPUT_OPTION,
    ) -> dict[str, Any]:
        payload = await self._request(
            "POST",
            f"{self._values_path(spreadsheet_id, range)}:append",
            action="append row",
            params={"valueInputOption": value_input_option, "insertDataOption": "INSERT_ROWS"},
            json={"values": [list(values)]},
        )
        updates = payload.get("updates") or {}
        return {
            "updatedCells": updates.get("updatedCells"),
            "updatedRows": updates.get("updatedRows"),
            "updatedRange": updates.get("updatedRange"),
        }

    async def clear_range(self, spreadsheet_id: str, range: str) -> dict[str, Any]:
        payload = await self._request(
            "POST",
            f"{self._values_path(spreadsheet_id, range)}:clear",
            action="clear range",
            json={},
        )
        return {"clearedRange": payload.get("clearedRange")}

    # ------------------------------------------------------------------
    # Spreadsheet
    # ------------------------------------------------------------------
    async def get_metadata(self, spreadsheet_id: str) -> dict[str, Any]:
        payload = await self._request(
            "GET",
            self._spreadsheet_path(spreadsheet_id),
            action="get metadata",
            params={"fields": "spreadsheetId,properties.title,sheets.properties"},
        )
        return _metadata_from_payload(payload)

    async def test_connection(self, spreadsheet_id: str) -> dict[str, Any]:
        payload = await self._request(
            "GET",
            self._spreadsheet_path(spreadsheet_id),
            action="connect to spreadsheet",
            params={"fields": "spreadsheetId,properties.title"},
        )
        return {
            "success": True,
            "title": (payload.get("properties") or {}).get("title"),
            "spreadsheetId": payload.get("spreadsheetId", spreadsheet_id),
        }

    async def create_chart(self, spreadsheet_id: str, options: Mapping[str, Any]) -> dict[str, Any]:
        """Add a basic chart built from ``options["dataSourceRange"]``.

        The first column of the range is the domain and each further column
        becomes one series. The anchor defaults to row 0, one column right of
        the data.
        """

        source = str(options.get("dataSourceRange") or "")
        try:
            grid = GridRange.parse(source)
        except ValueError as exc:
            raise InvalidRangeError(message=f"Failed to create chart: {exc}", range=source) from exc
        data_columns = grid.column_count - 1
        if data_columns < 1:
            raise InvalidRangeError(
                message=(
                    "Failed to create chart: Chart requires at least one data column "
                    "(domain column + at least one data column)"
                ),
                range=source,
            )
        sheet_id = options.get("sheetId")
        if sheet_id is None:
            sheet_id = await self._resolve_sheet_id(spreadsheet_id, grid.sheet_name)

        series = [
            {
                "series": {
                    "sourceRange": {
                        "sources": [grid.as_grid_source(sheet_id, start_column=column, end_column=column + 1)]
                    }
                },
                "targetAxis": "LEFT_AXIS",
            }
            for column in range(grid.start_column + 1, grid.end_column)
        ]
        spec = {
            "title": options.get("title") or "",
            "basicChart": {
                "chartType": options.get("chartType"),
                "legendPosition": options.get("legendPosition") or DEFAULT_LEGEND_POSITION,
                "domains": [
                    {
                        "domain": {
                            "sourceRange": {
                                "sources": [
                                    grid.as_grid_source(
                                        sheet_id,
                                        start_column=grid.start_column,
                                        end_column=grid.start_column + 1,
                                    )
                                ]
                            }
                        }
                    }
                ],
                "series": series,
                "headerCount": 1,
            },
        }
        position = options.get("position") or {}
        anchor = {
            "sheetId": sheet_id,
            "rowIndex": int(position.get("rowIndex") or 0),
            "columnIndex": int(
                position["columnIndex"] if position.get("columnIndex") is not None else grid.end_column + 1
            ),
        }
        body = {
            "requests": [
                {
                    "addChart": {
                        "chart": {
                            "spec": spec,
                            "position": {
                                "overlayPosition": {
                                    "anchorCell": anchor,
                                    "offsetXPixels": 0,
                                    "offsetYPixels": 0,
                                }
                            },
                        }
                    }
                }
            ]
        }
        payload = await self._request(
            "POST",
            f"{self._spreadsheet_path(spreadsheet_id)}:batchUpdate",
            action="create chart",
            json=body,
        )
        replies = payload.get("replies") or [{}]
        chart = ((replies[0] or {}).get("addChart") or {}).get("chart") or {}
        LOGGER.info("Created %s chart over %s", options.get("chartType"), source)
        return {"chartId": chart.get("chartId"), "success": True}

    async def aclose(self) -> None:
        if self._token_source is not None:
            await self._token_source.aclose()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _resolve_sheet_id(self, spreadsheet_id: str, sheet_name: str | None) -> int:
        metadata = await self.get_metadata(spreadsheet_id)
        sheets = metadata["sheets"]
        if not sheets:
            raise ResourceError(message="Failed to create chart: No sheets found in spreadsheet")
        if sheet_name is None:
            return sheets[0]["sheetId"]
        for sheet in sheets:
            if sheet.get("title") == sheet_name:
                return sheet["sheetId"]
        raise SheetNotFoundError(message=f'Failed to create chart: Sheet "{sheet_name}" not found', sheet_name=sheet_name)

    async def _access_token(self) -> str:
        if self._token_source is not None:
            return await self._token_source.token()
        return self._settings.access_token

    def _spreadsheet_path(self, spreadsheet_id: str) -> str:
        return f"spreadsheets/{quote(spreadsheet_id, safe='')}"

    def _values_path(self, spreadsheet_id: str, range: str) -> str:
        return f"{self._spreadsheet_path(spreadsheet_id)}/values/{quote(range, safe='')}"

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            base_url = self._settings.base_url
            if not base_url.endswith("/"):
                base_url = f"{base_url}/"
            self._client = httpx.AsyncClient(base_url=base_url, timeout=self._settings.request_timeout)
            self._owns_client = True
        return self._client

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type((_TransientStatusError, httpx.TimeoutException, httpx.TransportError)),
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        if not self.is_configured():
            raise NotConfiguredError()
        headers = {"Authorization": f"Bearer {await self._access_token()}"}
        client = self._http()
        LOGGER.debug("Sheets %s %s", method, path)
        try:
            response = await self._send(client, method, path, headers=headers, params=params, json=json)
        except _TransientStatusError as exc:
            raise ResourceError(
                message=f"Failed to {action}: {_error_detail(exc.response)}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ResourceError(message=f"Failed to {action}: {exc}") from exc

        if response.is_error:
            raise ResourceError(
                message=f"Failed to {action}: {_error_detail(response)}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise ResourceError(message=f"Failed to {action}: response was not valid JSON") from exc
        return payload if isinstance(payload, dict) else {}

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str],
        params: Mapping[str, Any] | None,
        json: Any,
    ) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                response = await client.request(method, path, headers=headers, params=params, json=json)
                if _should_retry_status(response.status_code):
                    LOGGER.warning("Sheets %s %s returned %s; retrying", method, path, response.status_code)
                    raise _TransientStatusError(response)
                return response
        raise ResourceError(message="Sheets request produced no response")  # pragma: no cover


def _metadata_from_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    sheets = []
    for sheet in payload.get("sheets") or []:
        properties = sheet.get("properties") or {}
        sheets.append(
            {
                "title": properties.get("title"),
                "sheetId": properties.get("sheetId"),
                "gridProperties": properties.get("gridProperties"),
            }
        )
    return {"title": (payload.get("properties") or {}).get("title"), "sheets": sheets}


__all__ = [
    "DEFAULT_SHEETS_BASE_URL",
    "DEFAULT_VALUE_INPUT_OPTION",
    "ResourceClient",
    "ResourceHandle",
    "SheetsClient",
    "SheetsClientSettings",
]
