from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import requests

from ..config import REQUEST
from ..errors import NetworkError, RateLimitError
from ..utils.utilities import RateLimiter
from .parse import parse_retry_after


@dataclass
class HTTPClient:
    """
    Small helper to standardize request + rate limiting + stats counting + error mapping.

    Clients pass in their own `requests.Session`, `stats` dict and the shared rate limiter.
    Every failure is raised as a typed error:
    - timeouts and connection failures -> NetworkError(status_code=0)
    - HTTP 429 -> RateLimitError (Retry-After honored)
    - other non-2xx responses and undecodable JSON -> NetworkError(status_code=<status>)

    Retrying is left to the caller (see RetryPolicy).
    """

    session: requests.Session
    stats: dict[str, Any] | None = None
    ratelimiter: RateLimiter | None = None
    timeout_s: float = REQUEST.timeout_s
    headers: dict[str, str] = field(default_factory=dict)

    def _bump(self, key: str) -> None:
        if self.stats is None:
            return
        self.stats[key] = int(self.stats.get(key, 0) or 0) + 1

    def _bump_ms(self, key: str, elapsed_ms: int) -> None:
        if self.stats is None:
            return
        ms_key = f"{key}_ms"
        self.stats[ms_key] = int(self.stats.get(ms_key, 0) or 0) + int(elapsed_ms)

    @staticmethod
    def format_timing(stats: dict[str, Any] | None, *, key: str) -> str:
        """
        Format request counter and cumulative time for a key tracked via `_bump()`.
        """
        if not stats:
            return f"{key}=0"
        count = int(stats.get(key, 0) or 0)
        ms = int(stats.get(f"{key}_ms", 0) or 0)
        return f"{key}={count} ({ms}ms)"

    def _send(
        self,
        method: str,
        url: str,
        *,
        counter_key: str,
        timeout_s: float | None,
        headers: dict[str, str] | None,
        **kwargs: Any,
    ) -> requests.Response:
        if self.ratelimiter is not None:
            self.ratelimiter.wait()
        self._bump(counter_key)
        merged = dict(self.headers)
        if headers:
            merged.update(headers)
        t0 = time.perf_counter()
        try:
            r = self.session.request(
                method,
                url,
                headers=merged or None,
                timeout=timeout_s if timeout_s is not None else self.timeout_s,
                **kwargs,
            )
        except requests.exceptions.Timeout as e:
            self._bump("network_errors")
            raise NetworkError(f"Timeout calling {url}: {e}", status_code=0) from e
        except requests.exceptions.ConnectionError as e:
            self._bump("network_errors")
            raise NetworkError(f"Connection failed for {url}: {e}", status_code=0) from e
        except requests.exceptions.RequestException as e:
            self._bump("network_errors")
            raise NetworkError(f"Request failed for {url}: {e}") from e
        finally:
            self._bump_ms(counter_key, int(round((time.perf_counter() - t0) * 1000.0)))

        if r.status_code == 429:
            self._bump("http_429")
            retry_after = parse_retry_after(r.headers.get("Retry-After"))
            raise RateLimitError(f"Rate limited by {url}", retry_after_s=retry_after)
        if not 200 <= r.status_code < 300:
            self._bump("http_errors")
            raise NetworkError(f"HTTP {r.status_code} from {url}", status_code=r.status_code)
        return r

    def post_json(
        self,
        url: str,
        *,
        json_body: Any,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        counter_key: str = "http_post",
    ) -> Any:
        r = self._send(
            "POST", url, counter_key=counter_key, timeout_s=timeout_s, headers=headers, json=json_body
        )
        try:
            return r.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from {url}", status_code=r.status_code) from e

    def get_text(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        counter_key: str = "http_get",
    ) -> str:
        r = self._send(
            "GET", url, counter_key=counter_key, timeout_s=timeout_s, headers=headers, params=params
        )
        return r.text or ""

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        counter_key: str = "http_get",
    ) -> Any:
        r = self._send(
            "GET", url, counter_key=counter_key, timeout_s=timeout_s, headers=headers, params=params
        )
        try:
            return r.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from {url}", status_code=r.status_code) from e
