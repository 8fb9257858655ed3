"""Shared fixtures: an in-memory stand-in for the Google Sheets values API."""

import json
import re
from typing import List, Optional

import httpx
import pytest

from src.sheets.client import SheetsClient
from src.sheets.models import HEADER_TITLES

_RANGE = re.compile(r"^[^!]+!A(\d+):F(\d*)$")


class FakeSheet:
    """Serves values get/append/update like the real API, backed by a list.

    ``rows[0]`` is sheet row 1. Reads trim trailing empty cells and
    trailing empty rows, as the real API does.
    """

    def __init__(self, rows: Optional[List[List[str]]] = None) -> None:
        self.rows: List[List[str]] = [list(r) for r in rows or []]
        self.requests: List[httpx.Request] = []
        self.fail_status: Optional[int] = None
        self.fail_methods: set[str] = set()

    @property
    def writes(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method in ("POST", "PUT")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status and (not self.fail_methods or request.method in self.fail_methods):
            return httpx.Response(self.fail_status, text="backend error")

        range_a1 = request.url.path.split("/values/", 1)[1]

        if request.method == "POST" and range_a1.endswith(":append"):
            row = json.loads(request.content)["values"][0]
            self.rows.append(list(row))
            n = len(self.rows)
            return httpx.Response(
                200, json={"updates": {"updatedRange": f"Sheet1!A{n}:F{n}"}}
            )

        match = _RANGE.match(range_a1)
        assert match, f"unexpected range {range_a1}"
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) else len(self.rows)

        if request.method == "PUT":
            row = json.loads(request.content)["values"][0]
            while len(self.rows) < start:
                self.rows.append([])
            self.rows[start - 1] = list(row)
            return httpx.Response(200, json={"updatedRange": range_a1})

        values = [_trim(r) for r in self.rows[start - 1:end]]
        while values and not values[-1]:
            values.pop()
        body = {"range": range_a1}
        if values:
            body["values"] = values
        return httpx.Response(200, json=body)

    def data_rows(self) -> List[List[str]]:
        return self.rows[1:]


def _trim(row: List[str]) -> List[str]:
    row = list(row)
    while row and row[-1] == "":
        row.pop()
    return row


@pytest.fixture
def fake_sheet() -> FakeSheet:
    """A sheet that already has its header row."""
    return FakeSheet([list(HEADER_TITLES)])


@pytest.fixture
async def sheets_client(fake_sheet):
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_sheet.handler))
    client = SheetsClient(
        sheet_id="sheet-123",
        access_token="token-abc",
        http_client=http,
    )
    yield client
    await http.aclose()


@pytest.fixture
async def make_client():
    """Factory: build a (FakeSheet, SheetsClient) pair from initial rows."""
    clients: List[httpx.AsyncClient] = []

    def _make(rows: Optional[List[List[str]]] = None, **kwargs):
        sheet = FakeSheet(rows)
        http = httpx.AsyncClient(transport=httpx.MockTransport(sheet.handler))
        clients.append(http)
        kwargs.setdefault("access_token", "token-abc")
        return sheet, SheetsClient(sheet_id="sheet-123", http_client=http, **kwargs)

    yield _make
    for http in clients:
        await http.aclose()
