from __future__ import annotations

from typing import Any

import requests
from loguru import logger
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in RETRY_STATUS_CODES
    return False


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("HTTP attempt {} failed, retrying: {}", retry_state.attempt_number, exc)


http_retry = retry(
    retry=retry_if_exception(is_retryable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before_sleep=_log_retry,
    reraise=True,
)


class ApiClient:
    def __init__(
        self,
        base_url: str = "",
        session: requests.Session | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        if headers:
            self._session.headers.update(headers)

    def _url(self, path: str) -> str:
        if not path:
            return self.base_url
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    @http_retry
    def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        resp = self._session.get(self._url(path), params=params, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    @http_retry
    def post_json(
        self,
        path: str,
        json: Any = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        resp = self._session.post(
            self._url(path), json=json, data=data, headers=headers, timeout=self.timeout
        )
        resp.raise_for_status()
        return resp.json()

    @http_retry
    def get_bytes(self, url: str, params: dict[str, Any] | None = None) -> bytes:
        resp = self._session.get(self._url(url), params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.content

    def redirect_location(self, url: str) -> str | None:
        resp = self._session.get(url, allow_redirects=False, timeout=self.timeout)
        if 300 <= resp.status_code < 400:
            return resp.headers.get("location") or resp.headers.get("Location")
        resp.raise_for_status()
        return None

    def close(self) -> None:
        self._session.close()
