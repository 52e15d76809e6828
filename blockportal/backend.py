import logging
from urllib.parse import quote

import requests

from .errors import BackendError, BackendUnavailable

logger = logging.getLogger(__name__)


def _eq_value(value) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    if isinstance(value, (list, tuple, set)):
        return "in.(" + ",".join(str(v) for v in value) + ")"
    return f"eq.{value}"


class SupabaseClient:
    """
    Thin client for the hosted backend: PostgREST tables under /rest/v1 and
    Storage buckets under /storage/v1. Uses the service-role key, so it must
    only ever run server-side.

    Filters are plain dicts: scalars become ``eq``, ``None`` becomes
    ``is.null``, and sequences become ``in``.
    """

    def __init__(self, url: str, service_key: str, timeout: float = 10, session=None):
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self.http = session or requests.Session()

    def _headers(self, extra=None) -> dict:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, url: str, **kwargs):
        try:
            r = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("Backend %s %s failed: %s", method, url, exc)
            raise BackendUnavailable() from exc

        if r.status_code >= 500:
            logger.error("Backend %s %s returned %s", method, url, r.status_code)
            raise BackendUnavailable()
        if r.status_code >= 400:
            detail = _error_detail(r)
            logger.warning("Backend %s %s rejected (%s): %s", method, url, r.status_code, detail)
            raise BackendError(detail or None, status=r.status_code)
        return r

    def _json(self, r):
        try:
            return r.json() or []
        except ValueError as exc:
            logger.error("Backend returned a non-JSON body (%s): %s", r.status_code, (r.text or "")[:200])
            raise BackendUnavailable() from exc

    # ---- tables -------------------------------------------------------

    def _table_url(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    def _params(self, filters=None, columns=None, order=None, limit=None) -> dict:
        params = {}
        if columns:
            params["select"] = columns
        for col, value in (filters or {}).items():
            params[col] = _eq_value(value)
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        return params

    def select(self, table: str, filters=None, columns: str = "*", order: str | None = None, limit: int | None = None) -> list:
        r = self._request("GET", self._table_url(table), headers=self._headers(),
                          params=self._params(filters, columns, order, limit))
        return self._json(r)

    def insert(self, table: str, row: dict) -> dict:
        r = self._request("POST", self._table_url(table),
                          headers=self._headers({"Prefer": "return=representation"}),
                          params={"select": "*"}, json=[row])
        rows = self._json(r)
        if not rows:
            raise BackendError("Insert returned no rows")
        return rows[0]

    def upsert(self, table: str, row: dict, on_conflict: str) -> dict:
        r = self._request("POST", self._table_url(table),
                          headers=self._headers({"Prefer": "resolution=merge-duplicates,return=representation"}),
                          params={"on_conflict": on_conflict}, json=[row])
        rows = self._json(r)
        return rows[0] if rows else row

    def update(self, table: str, values: dict, filters: dict) -> list:
        if not filters:
            raise ValueError("update() without filters would touch every row")
        r = self._request("PATCH", self._table_url(table),
                          headers=self._headers({"Prefer": "return=representation"}),
                          params=self._params(filters, columns="*"), json=values)
        return self._json(r)

    def delete(self, table: str, filters: dict) -> list:
        if not filters:
            raise ValueError("delete() without filters would touch every row")
        r = self._request("DELETE", self._table_url(table),
                          headers=self._headers({"Prefer": "return=representation"}),
                          params=self._params(filters))
        return self._json(r)

    # ---- storage ------------------------------------------------------

    def upload(self, bucket: str, name: str, data: bytes, content_type: str) -> str:
        url = f"{self.url}/storage/v1/object/{bucket}/{quote(name)}"
        self._request("POST", url, data=data, headers=self._headers({
            "Content-Type": content_type or "application/octet-stream",
            "Cache-Control": "max-age=3600",
            "x-upsert": "false",
        }))
        return self.public_url(bucket, name)

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self.url}/storage/v1/object/public/{bucket}/{quote(name)}"

    def remove(self, bucket: str, names) -> None:
        names = [n for n in names if n]
        if not names:
            return
        self._request("DELETE", f"{self.url}/storage/v1/object/{bucket}",
                      headers=self._headers(), json={"prefixes": names})


def _error_detail(r) -> str:
    try:
        body = r.json()
    except ValueError:
        return (r.text or "")[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("msg") or "")
    return ""
