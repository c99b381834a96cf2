"""
Shared HTTP transport for channel adapters.

Handles:
- Per-call timeout
- Exponential backoff on 429, 5xx and network errors
- Structured error mapping; auth failures raise ChannelAuthError
- Request logging with secrets redacted
"""

import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from ...exceptions import ChannelAuthError, ChannelTransportError

logger = logging.getLogger(__name__)


@dataclass
class ChannelResponse:
    """Wrapper for channel API responses with structured error info"""
    success: bool
    status_code: int
    data: Optional[Any] = None
    text: str = ""
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class ChannelErrorInfo:
    code: str
    message: str
    status_code: int
    retryable: bool = False


ERROR_MAP = {
    400: ChannelErrorInfo("bad_request", "Request rejected by channel", 400, False),
    401: ChannelErrorInfo("unauthorized", "Invalid or missing credentials", 401, False),
    403: ChannelErrorInfo("forbidden", "Access denied to this resource", 403, False),
    404: ChannelErrorInfo("not_found", "Resource not found", 404, False),
    422: ChannelErrorInfo("validation_error", "Invalid request data", 422, False),
    429: ChannelErrorInfo("rate_limited", "Too many requests", 429, True),
    500: ChannelErrorInfo("server_error", "Channel server error", 500, True),
    502: ChannelErrorInfo("bad_gateway", "Channel gateway error", 502, True),
    503: ChannelErrorInfo("service_unavailable", "Channel service unavailable", 503, True),
    504: ChannelErrorInfo("gateway_timeout", "Channel gateway timeout", 504, True),
}

AUTH_STATUS_CODES = (401, 403)

SENSITIVE_KEYS = ("api_key", "password", "secret", "token", "authorization", "user-api-key")


def sanitize_payload(payload: Optional[Dict]) -> Optional[Dict]:
    """Remove sensitive data from payload before logging"""
    if not payload:
        return None

    def sanitize_dict(d: Dict) -> Dict:
        result = {}
        for k, v in d.items():
            if any(sk in str(k).lower() for sk in SENSITIVE_KEYS):
                result[k] = "[REDACTED]"
            elif isinstance(v, dict):
                result[k] = sanitize_dict(v)
            elif isinstance(v, list):
                result[k] = [sanitize_dict(i) if isinstance(i, dict) else i for i in v]
            else:
                result[k] = v
        return result

    return sanitize_dict(payload)


def map_error(status_code: int, response_data: Optional[Any]) -> ChannelErrorInfo:
    """Map HTTP status code to structured error"""
    if status_code in ERROR_MAP:
        error = ERROR_MAP[status_code]
        if isinstance(response_data, dict):
            detail = response_data.get("errors") or response_data.get("error")
            msg = None
            if isinstance(detail, dict):
                msg = detail.get("message") or detail.get("title")
            elif isinstance(detail, str):
                msg = detail
            msg = msg or response_data.get("message")
            if msg:
                return ChannelErrorInfo(error.code, str(msg), status_code, error.retryable)
        return error

    if status_code >= 500:
        return ChannelErrorInfo("server_error", f"Server error: {status_code}", status_code, True)

    return ChannelErrorInfo("unknown", f"Unexpected status: {status_code}", status_code, False)


class ChannelHttpTransport:
    """
    One channel's HTTP endpoint.

    Pass `client` to share a pooled httpx.Client (tests hand in one backed by
    httpx.MockTransport); otherwise a short-lived client is opened per call.
    """

    def __init__(
        self,
        channel_name: str,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 20,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.channel_name = channel_name
        self.base_url = base_url
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._client = client
        self._sleep = sleep

    def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        json: Optional[Dict],
        content: Optional[str],
        params: Optional[Dict]
    ) -> httpx.Response:
        if self._client is not None:
            return self._client.request(
                method, url, headers=headers, json=json, content=content, params=params, timeout=self.timeout
            )
        with httpx.Client(timeout=self.timeout) as client:
            return client.request(method, url, headers=headers, json=json, content=content, params=params)

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict] = None,
        content: Optional[str] = None,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ChannelResponse:
        """
        Send a request with retries.

        Returns a ChannelResponse for 2xx and non-retryable 4xx answers.
        Raises ChannelAuthError on 401/403 and ChannelTransportError once
        retries on 429/5xx/network errors are exhausted.
        """
        url = self._url(endpoint)
        request_headers = {**self.headers, **(headers or {})}
        start_time = time.time()
        last_error = None
        last_status = 0

        for attempt in range(self.max_retries):
            try:
                response = self._send(method, url, request_headers, json, content, params)
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt + 1 < self.max_retries:
                    delay = self._delay(attempt)
                    logger.warning(f"[{self.channel_name}] {method} {url} failed: {last_error}, retrying in {delay}s")
                    self._sleep(delay)
                continue

            status_code = response.status_code
            last_status = status_code
            duration_ms = int((time.time() - start_time) * 1000)

            try:
                data = response.json()
            except ValueError:
                data = None

            if 200 <= status_code < 300:
                logger.debug(
                    f"[{self.channel_name}] {method} {url} -> {status_code} ({duration_ms}ms) "
                    f"payload={sanitize_payload(json)}"
                )
                return ChannelResponse(success=True, status_code=status_code, data=data, text=response.text)

            error = map_error(status_code, data)

            if status_code in AUTH_STATUS_CODES:
                logger.error(f"[{self.channel_name}] {method} {url} rejected credentials ({status_code})")
                raise ChannelAuthError(error.message, status_code=status_code, channel_name=self.channel_name)

            if error.retryable:
                last_error = error.message
                if attempt + 1 < self.max_retries:
                    delay = self._delay(attempt)
                    logger.warning(f"[{self.channel_name}] {error.code} ({status_code}), retrying in {delay}s")
                    self._sleep(delay)
                continue

            logger.warning(f"[{self.channel_name}] {method} {url} -> {status_code}: {error.message}")
            return ChannelResponse(
                success=False,
                status_code=status_code,
                data=data,
                text=response.text,
                error=error.message,
                error_code=error.code,
            )

        duration_ms = int((time.time() - start_time) * 1000)
        logger.error(
            f"[{self.channel_name}] {method} {url} gave up after {self.max_retries} attempt(s) "
            f"in {duration_ms}ms: {last_error}"
        )
        raise ChannelTransportError(
            f"All retries failed: {last_error}",
            status_code=last_status,
            channel_name=self.channel_name,
        )
