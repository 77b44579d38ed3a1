"""Google Sheets v4 client implementing the position-addressed table store."""

import asyncio
from collections.abc import Sequence
from typing import Any, cast
from urllib.parse import quote

import httpx
import structlog

from visa_tracker.config import get_settings
from visa_tracker.store.base import StoreError, row_range

logger = structlog.get_logger(__name__)


class SheetsAPIError(StoreError):
    """Base exception for Sheets API errors."""

    pass


class AuthenticationError(SheetsAPIError):
    """The access token was rejected."""

    pass


class RateLimitError(SheetsAPIError):
    """Rate limit exceeded."""

    pass


class TableNotFoundError(SheetsAPIError):
    """No sheet with the requested title exists."""

    pass


HEADER_BACKGROUND = {"red": 0.9, "green": 0.9, "blue": 0.9}

# Methods safe to resend after a transport error
RETRYABLE_METHODS = frozenset({"GET", "PUT"})


def a1(table: str, cell_range: str) -> str:
    """Qualify a range with its sheet title, quoting as Sheets expects."""
    escaped = table.replace("'", "''")
    return f"'{escaped}'!{cell_range}"


class SheetsAPIClient:
    """Async client for one spreadsheet, one sheet per table."""

    def __init__(
        self,
        base_url: str | None = None,
        spreadsheet_id: str | None = None,
        access_token: str | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.sheets_api_url).rstrip("/")
        self.spreadsheet_id = spreadsheet_id or settings.spreadsheet_id
        self._access_token = access_token or settings.sheets_access_token.get_secret_value()
        self._timeout = settings.sheets_timeout
        self._max_retries = settings.sheets_max_retries

        self._client: httpx.AsyncClient | None = None
        # Sheet title -> sheetId, filled from metadata reads and sheet creation
        self._sheet_ids: dict[str, int] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SheetsAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._access_token}",
        }

    @property
    def _spreadsheet_path(self) -> str:
        return f"/v4/spreadsheets/{self.spreadsheet_id}"

    def _values_path(self, table: str, cell_range: str) -> str:
        return f"{self._spreadsheet_path}/values/{quote(a1(table, cell_range), safe='')}"

    # === Generic Request Method ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> dict[str, Any]:
        """Make an authenticated API request with retry on transport errors."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            # A POST may have been applied before the connection dropped
            if method in RETRYABLE_METHODS and retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, path, params, json, retry_count + 1)
            raise SheetsAPIError(f"Request failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError("Access token rejected", status_code=401)

        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", "60"))
            raise RateLimitError(
                f"Rate limited, retry after {retry_after}s",
                status_code=429,
                details={"retry_after": retry_after},
            )

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {"raw": response.text[:500] if response.text else "empty response"}
            raise SheetsAPIError(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        if not response.content:
            return {}
        data = response.json()
        if not isinstance(data, dict):
            raise SheetsAPIError("Invalid response format")
        return cast(dict[str, Any], data)

    async def _batch_update(self, requests: list[dict[str, Any]]) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._spreadsheet_path}:batchUpdate",
            json={"requests": requests},
        )

    # === Tables ===

    async def _sheet_properties(self) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            self._spreadsheet_path,
            params={"fields": "sheets.properties(sheetId,title)"},
        )
        properties = [sheet.get("properties", {}) for sheet in data.get("sheets", [])]
        self._sheet_ids = {
            str(p["title"]): int(p["sheetId"])
            for p in properties
            if "title" in p and "sheetId" in p
        }
        return properties

    async def _sheet_id(self, table: str) -> int:
        if table not in self._sheet_ids:
            await self._sheet_properties()
        if table in self._sheet_ids:
            return self._sheet_ids[table]
        raise TableNotFoundError(f"Sheet not found: {table}", status_code=404)

    async def list_tables(self) -> list[str]:
        """List sheet titles in spreadsheet order."""
        return [str(p.get("title", "")) for p in await self._sheet_properties()]

    async def create_table(self, table: str, headers: Sequence[str]) -> None:
        """Add a sheet with a bold, frozen header row."""
        data = await self._batch_update([{"addSheet": {"properties": {"title": table}}}])
        sheet_id = data["replies"][0]["addSheet"]["properties"]["sheetId"]
        self._sheet_ids[table] = int(sheet_id)

        await self.write_headers(table, headers)

        await self._batch_update(
            [
                {
                    "repeatCell": {
                        "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1},
                        "cell": {
                            "userEnteredFormat": {
                                "textFormat": {"bold": True},
                                "backgroundColor": HEADER_BACKGROUND,
                            }
                        },
                        "fields": "userEnteredFormat(textFormat,backgroundColor)",
                    }
                },
                {
                    "updateSheetProperties": {
                        "properties": {
                            "sheetId": sheet_id,
                            "gridProperties": {"frozenRowCount": 1},
                        },
                        "fields": "gridProperties.frozenRowCount",
                    }
                },
            ]
        )
        logger.info("table_created", table=table, sheet_id=sheet_id)

    async def write_headers(self, table: str, headers: Sequence[str]) -> None:
        """Overwrite the header row."""
        await self._request(
            "PUT",
            self._values_path(table, row_range(1, len(headers))),
            params={"valueInputOption": "USER_ENTERED"},
            json={"values": [list(headers)]},
        )

    async def drop_table(self, table: str) -> None:
        """Delete a sheet and every row in it."""
        sheet_id = await self._sheet_id(table)
        await self._batch_update([{"deleteSheet": {"sheetId": sheet_id}}])
        self._sheet_ids.pop(table, None)
        logger.info("table_dropped", table=table, sheet_id=sheet_id)

    # === Rows ===

    async def read(self, table: str, cell_range: str) -> list[list[str]]:
        """Read a range; trailing empty cells and rows are omitted by Sheets."""
        data = await self._request("GET", self._values_path(table, cell_range))
        return [[str(cell) for cell in row] for row in data.get("values", [])]

    async def append(self, table: str, row: Sequence[str]) -> None:
        """Append a row after the last populated row of the table."""
        # Anchoring at A1 makes Sheets scan the whole table for the end
        await self._request(
            "POST",
            f"{self._values_path(table, 'A1')}:append",
            params={"valueInputOption": "USER_ENTERED"},
            json={"values": [list(row)]},
        )
        logger.debug("row_appended", table=table, width=len(row))

    async def update(self, table: str, row_index: int, row: Sequence[str]) -> None:
        """Overwrite a full row at a physical position."""
        if row_index < 2:
            raise ValueError(f"row_index must address a data row, got {row_index}")
        await self._request(
            "PUT",
            self._values_path(table, row_range(row_index, len(row))),
            params={"valueInputOption": "USER_ENTERED"},
            json={"values": [list(row)]},
        )
        logger.debug("row_updated", table=table, row_index=row_index)

    async def delete(self, table: str, row_index: int) -> None:
        """Remove a physical row, shifting following rows up."""
        if row_index < 2:
            raise ValueError(f"row_index must address a data row, got {row_index}")
        sheet_id = await self._sheet_id(table)
        await self._batch_update(
            [
                {
                    "deleteDimension": {
                        "range": {
                            "sheetId": sheet_id,
                            "dimension": "ROWS",
                            "startIndex": row_index - 1,
                            "endIndex": row_index,
                        }
                    }
                }
            ]
        )
        logger.debug("row_deleted", table=table, row_index=row_index)
