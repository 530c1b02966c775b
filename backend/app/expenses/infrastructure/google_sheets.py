"""
Google Sheets bookkeeping sink

Approved expenses are appended to one tab per site of a single spreadsheet.
Every row carries the expense id in its last column so that an append can be
retried without writing the same expense twice.
"""
import json
import logging
import string
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional
from urllib.parse import quote

import httpx
from jose import JWTError, jwt

from app.expenses.application.ports import ExpenseSheetSink, SheetSyncError
from app.expenses.domain.models import SHEET_HEADER, ExpenseSheetRow

logger = logging.getLogger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = ("https://www.googleapis.com/auth/spreadsheets",)
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# Column holding the expense id (last header column).
ID_COLUMN = string.ascii_uppercase[len(SHEET_HEADER) - 1]

TokenProvider = Callable[[], Awaitable[str]]


def a1_range(sheet_title: str, cells: str) -> str:
    escaped = sheet_title.replace("'", "''")
    return f"'{escaped}'!{cells}"


class ServiceAccountTokenProvider:
    """Exchanges a signed service-account assertion for an OAuth access token."""

    def __init__(
        self,
        credentials_file: str,
        scopes=SCOPES,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._credentials_file = Path(credentials_file)
        self._scopes = scopes
        self._timeout = timeout
        self._clock = clock
        self._transport = transport
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def _load_credentials(self) -> dict:
        try:
            with open(self._credentials_file, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise SheetSyncError(
                f"Cannot read service account credentials from {self._credentials_file}: {exc}"
            ) from exc

    async def __call__(self) -> str:
        if self._token and self._clock() < self._expires_at - 60:
            return self._token

        info = self._load_credentials()
        now = int(self._clock())
        token_uri = info.get("token_uri", TOKEN_URI)

        try:
            assertion = jwt.encode(
                {
                    "iss": info["client_email"],
                    "scope": " ".join(self._scopes),
                    "aud": token_uri,
                    "iat": now,
                    "exp": now + 3600,
                },
                info["private_key"],
                algorithm="RS256",
                headers={"kid": info["private_key_id"]} if info.get("private_key_id") else None,
            )
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    token_uri,
                    data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                )
            response.raise_for_status()
            payload = response.json()
            self._token = payload["access_token"]
            self._expires_at = now + int(payload.get("expires_in", 3600))
        except (KeyError, ValueError, JWTError, httpx.HTTPError) as exc:
            raise SheetSyncError(f"Google authentication failed: {exc}") from exc

        return self._token


class GoogleSheetsExpenseSink(ExpenseSheetSink):
    def __init__(
        self,
        spreadsheet_id: str,
        token_provider: TokenProvider,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._spreadsheet_id = spreadsheet_id
        self._token_provider = token_provider
        self._timeout = timeout
        self._transport = transport

    def _url(self, suffix: str = "") -> str:
        return f"{SHEETS_API_URL}/{self._spreadsheet_id}{suffix}"

    def _values_url(self, sheet_title: str, cells: str, action: str = "") -> str:
        return self._url(f"/values/{quote(a1_range(sheet_title, cells), safe='')}{action}")

    async def _open_client(self) -> httpx.AsyncClient:
        if not self._spreadsheet_id:
            raise SheetSyncError("GOOGLE_SHEET_ID is not configured")
        token = await self._token_provider()
        return httpx.AsyncClient(
            headers={"Authorization": f"Bearer {token}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _sheet_titles(self, client: httpx.AsyncClient) -> set:
        response = await client.get(self._url(), params={"fields": "sheets.properties.title"})
        response.raise_for_status()
        return {
            sheet["properties"]["title"]
            for sheet in response.json().get("sheets", [])
        }

    async def _append_values(self, client: httpx.AsyncClient, sheet_title: str, rows: list) -> None:
        response = await client.post(
            self._values_url(sheet_title, "A1", ":append"),
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": rows},
        )
        response.raise_for_status()

    async def _recorded_expense_ids(self, client: httpx.AsyncClient, sheet_title: str) -> set:
        response = await client.get(
            self._values_url(sheet_title, f"{ID_COLUMN}:{ID_COLUMN}")
        )
        response.raise_for_status()
        return {row[0] for row in response.json().get("values", []) if row}

    async def _ensure_tab(self, client: httpx.AsyncClient, sheet_title: str) -> bool:
        if sheet_title in await self._sheet_titles(client):
            return False

        response = await client.post(
            self._url(":batchUpdate"),
            json={"requests": [{"addSheet": {"properties": {"title": sheet_title}}}]},
        )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            # Another request may have added the tab in the meantime
            if sheet_title in await self._sheet_titles(client):
                logger.info(f"Sheet for site {sheet_title} was created concurrently")
                return False
            raise
        await self._append_values(client, sheet_title, [list(SHEET_HEADER)])
        logger.info(f"Created new sheet for site: {sheet_title}")
        return True

    async def ensure_site_tab(self, site_name: str) -> bool:
        try:
            async with await self._open_client() as client:
                return await self._ensure_tab(client, site_name)
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise SheetSyncError(f"Could not create sheet for {site_name}: {exc}") from exc

    async def append_expense(self, site_name: str, row: ExpenseSheetRow) -> bool:
        try:
            async with await self._open_client() as client:
                await self._ensure_tab(client, site_name)
                if row.expense_id in await self._recorded_expense_ids(client, site_name):
                    return False
                await self._append_values(client, site_name, [list(row.values)])
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise SheetSyncError(f"Google Sheets request failed: {exc}") from exc

        logger.info(f"Expense {row.expense_id} appended to sheet: {site_name}")
        return True


class LoggingExpenseSheetSink(ExpenseSheetSink):
    """Stand-in used when spreadsheet sync is switched off."""

    async def ensure_site_tab(self, site_name: str) -> bool:
        logger.info(f"Sheets sync disabled, not creating sheet for {site_name}")
        return False

    async def append_expense(self, site_name: str, row: ExpenseSheetRow) -> bool:
        logger.info(f"Sheets sync disabled, expense {row.expense_id} not exported ({site_name})")
        return True


def build_sheet_sink(settings) -> ExpenseSheetSink:
    if not settings.sheets_enabled:
        return LoggingExpenseSheetSink()
    token_provider = ServiceAccountTokenProvider(
        settings.google_credentials_path,
        timeout=settings.sheets_timeout_seconds,
    )
    return GoogleSheetsExpenseSink(
        settings.google_sheet_id,
        token_provider,
        timeout=settings.sheets_timeout_seconds,
    )
