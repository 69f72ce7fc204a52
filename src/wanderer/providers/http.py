from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests
from requests.exceptions import RequestException

from wanderer.core.errors import (
    NetworkError,
    ProviderInvalidRequest,
    ProviderInvalidResponse,
    ProviderQuotaExceeded,
)

# statuses where another key may succeed
_KEY_STATUSES = {401, 403, 429}


@dataclass
class HTTPClient:
    user_agent: str
    provider: str = "http"
    timeout_s: int = 20
    tries: int = 3
    backoff_s: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        self.s = requests.Session()
        self.s.headers.update(
            {
                "User-Agent": self.user_agent,
                "Accept": "application/json, application/geo+json, text/plain;q=0.9, */*;q=0.8",
            }
        )

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None, timeout_s: Optional[int] = None) -> Any:
        return self._request("GET", url, params=params, timeout_s=timeout_s)

    def post_json(
        self,
        url: str,
        body: Any,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout_s: Optional[int] = None,
    ) -> Any:
        return self._request("POST", url, params=params, json_body=body, headers=headers, timeout_s=timeout_s)

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_s: Optional[int] = None,
    ) -> Any:
        timeout = timeout_s if timeout_s is not None else self.timeout_s
        last_err: Optional[Exception] = None
        for attempt in range(1, self.tries + 1):
            try:
                r = self.s.request(method, url, params=params, json=json_body, headers=headers, timeout=timeout)
            except RequestException as e:
                # any transport failure is treated as transient
                last_err = e
            else:
                if r.status_code >= 500:
                    last_err = NetworkError(
                        f"{self.provider} HTTP {r.status_code}", provider=self.provider, status=r.status_code
                    )
                else:
                    return self._decode(r)

            if attempt < self.tries:
                # linear-in-attempt backoff: 1x, 2x, 3x ...
                self.sleep(self.backoff_s * attempt)

        if isinstance(last_err, NetworkError):
            raise last_err
        raise NetworkError(
            f"{self.provider} request failed after {self.tries} tries: {last_err}", provider=self.provider
        ) from last_err

    def _decode(self, r: requests.Response) -> Any:
        if r.status_code in _KEY_STATUSES:
            raise ProviderQuotaExceeded(
                f"{self.provider} HTTP {r.status_code}: {_snippet(r)}", provider=self.provider, status=r.status_code
            )
        if r.status_code >= 400:
            raise ProviderInvalidRequest(
                f"{self.provider} HTTP {r.status_code}: {_snippet(r)}", provider=self.provider, status=r.status_code
            )
        try:
            return r.json()
        except ValueError as e:
            raise ProviderInvalidResponse(
                f"{self.provider} returned non-JSON body", provider=self.provider, status=r.status_code
            ) from e


def _snippet(r: requests.Response, n: int = 200) -> str:
    try:
        return (r.text or "")[:n]
    except Exception:
        return ""
