"""BaaS REST gateway — PostgREST tables, auth user lookup, object storage.

Requests go through the shared pooled httpx client unless a client is
injected (tests pass one built on httpx.MockTransport). The user's
access token is forwarded so row-level security applies server-side.

Usage:
    gw = RestGateway(settings.baas_url, settings.baas_anon_key).with_token(token)
    rows = await gw.select(Query("leads").eq("stage_id", sid))
"""

import logging
import re

import httpx
from pydantic_core import to_jsonable_python

from ..errors import RemoteError
from .base import Condition, Gateway, Query

log = logging.getLogger("crmboard.gateway")

_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)$")
# PostgREST reserved characters inside in.(...) / or=(...) lists
_NEEDS_QUOTES = re.compile(r'[,.:()"\s]')


def _literal(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    value = to_jsonable_python(value)
    return str(value)


def _list_item(value) -> str:
    text = _literal(value)
    if _NEEDS_QUOTES.search(text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def encode_condition(op: str, value) -> str:
    """Render the right-hand side of a PostgREST filter (`eq.5`, `is.null`, ...)."""
    if op == "is":
        return f"is.{_literal(value)}"
    if op == "in":
        return "in.(" + ",".join(_list_item(v) for v in value) + ")"
    return f"{op}.{_literal(value)}"


def encode_or_group(conditions: list[Condition]) -> str:
    parts = []
    for column, op, value in conditions:
        rhs = encode_condition(op, value)
        if op not in ("in", "is"):
            op_name, _, raw = rhs.partition(".")
            rhs = f"{op_name}.{_list_item(raw)}"
        parts.append(f"{column}.{rhs}")
    return "(" + ",".join(parts) + ")"


def query_params(query: Query, *, for_read: bool = True) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    if for_read:
        params.append(("select", query.columns))
    for column, op, value in query.filters:
        params.append((column, encode_condition(op, value)))
    for group in query.or_groups:
        params.append(("or", encode_or_group(group)))
    if for_read and query.order_by:
        params.append(
            ("order", ",".join(f"{c}.{'asc' if asc else 'desc'}" for c, asc in query.order_by))
        )
    if for_read and query.limit_n is not None:
        params.append(("limit", str(query.limit_n)))
    return params


def parse_content_range(header: str | None) -> int:
    """`0-24/573` or `*/573` → 573."""
    if not header:
        return 0
    m = _CONTENT_RANGE_TOTAL.search(header.strip())
    return int(m.group(1)) if m else 0


class RestGateway(Gateway):
    """Thin wrapper over the BaaS HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        if client is None:
            from ..http_client import http

            client = http
        self.client = client

    def with_token(self, access_token: str) -> "RestGateway":
        return RestGateway(
            self.base_url, self.api_key, access_token, client=self.client, timeout=self.timeout
        )

    def _headers(self, extra: dict | None = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = await self.client.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.HTTPError as e:
            log.warning(f"Gateway {method} {url} failed: {e}")
            raise RemoteError(f"Gateway request failed: {e}") from e
        if resp.status_code >= 400:
            raise RemoteError(
                _error_message(resp), status_code=resp.status_code, detail=resp.text
            )
        return resp

    # ── Tables ──────────────────────────────────────────────────────

    async def select(self, query: Query) -> list[dict]:
        resp = await self._send(
            "GET", self._table_url(query.table),
            params=query_params(query), headers=self._headers(),
        )
        return resp.json()

    async def count(self, query: Query) -> int:
        resp = await self._send(
            "HEAD", self._table_url(query.table),
            params=query_params(query, for_read=False) + [("select", "id")],
            headers=self._headers({"Prefer": "count=exact"}),
        )
        return parse_content_range(resp.headers.get("content-range"))

    async def insert(self, table: str, rows: dict | list[dict]) -> list[dict]:
        payload = rows if isinstance(rows, list) else [rows]
        resp = await self._send(
            "POST", self._table_url(table),
            json=to_jsonable_python(payload),
            headers=self._headers({"Prefer": "return=representation"}),
        )
        return resp.json()

    async def update(self, query: Query, values: dict) -> list[dict]:
        resp = await self._send(
            "PATCH", self._table_url(query.table),
            params=query_params(query, for_read=False),
            json=to_jsonable_python(values),
            headers=self._headers({"Prefer": "return=representation"}),
        )
        return resp.json()

    async def delete(self, query: Query) -> int:
        resp = await self._send(
            "DELETE", self._table_url(query.table),
            params=query_params(query, for_read=False),
            headers=self._headers({"Prefer": "return=representation"}),
        )
        return len(resp.json() or [])

    # ── Auth ────────────────────────────────────────────────────────

    async def get_user(self, access_token: str) -> dict | None:
        try:
            resp = await self.client.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.api_key, "Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise RemoteError(f"Auth lookup failed: {e}") from e
        if resp.status_code in (401, 403):
            return None
        if resp.status_code >= 400:
            raise RemoteError(_error_message(resp), status_code=resp.status_code)
        return resp.json()

    # ── Storage ─────────────────────────────────────────────────────

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        await self._send(
            "POST", f"{self.base_url}/storage/v1/object/{bucket}/{path}",
            content=content,
            headers=self._headers({"Content-Type": content_type, "x-upsert": "true"}),
        )
        return path

    async def remove(self, bucket: str, paths: list[str]) -> None:
        await self._send(
            "DELETE", f"{self.base_url}/storage/v1/object/{bucket}",
            json={"prefixes": paths},
            headers=self._headers(),
        )

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text[:200]}"
    if isinstance(body, dict):
        return body.get("message") or body.get("msg") or body.get("error") or f"HTTP {resp.status_code}"
    return f"HTTP {resp.status_code}"
