"""Minimal ``requests.Session`` stand-ins for the REST client tests."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import requests


@dataclass
class DummyResponse:
    status_code: int
    payload: Any

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        if isinstance(self.payload, str):
            return json.loads(self.payload)
        return self.payload

    @property
    def text(self) -> str:
        payload = self.payload
        if payload is None:
            return ""
        if isinstance(payload, (dict, list)):
            return json.dumps(payload)
        return str(payload)


class DummySession:
    def __init__(self, responses: list[DummyResponse | Exception]):
        self._responses = responses
        self.request_log: list[tuple[str, str, dict[str, Any]]] = []
        self.headers: dict[str, str] = {}
        self.auth: Any = None

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> DummyResponse:
        self.request_log.append(
            (method, url, {"headers": headers, "json": json, "params": dict(params or {})})
        )
        if not self._responses:
            raise AssertionError("No response queued for request")
        nxt = self._responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection reset by peer")


# GET /rest/api/2/field listing with the six linkage fields (ids match fakes.CUSTOM).
JIRA_FIELDS = [
    {"id": "summary", "name": "Summary"},
    {"id": "customfield_10001", "name": "GitHub ID", "schema": {"customId": 10001}},
    {"id": "customfield_10002", "name": "GitHub Number", "schema": {"customId": 10002}},
    {"id": "customfield_10003", "name": "GitHub Labels", "schema": {"customId": 10003}},
    {"id": "customfield_10004", "name": "GitHub Status", "schema": {"customId": 10004}},
    {"id": "customfield_10005", "name": "GitHub Reporter", "schema": {"customId": 10005}},
    {"id": "customfield_10006", "name": "Last Issue-Sync Update", "schema": {"customId": 10006}},
]
