"""
Remote rule engine — consults an HTTP compliance service.

Thin synchronous wrapper over the service's two endpoints:

    GET /restrictions?from=..&to=..&amount=..   → {"code": int}
    GET /restrictions/{code}/message             → {"message": str}

Transport errors, non-2xx responses and malformed bodies are raised as
exceptions; the validation engine turns any of them into a restriction
(fail-closed).
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class RemoteEngineError(Exception):
    """The compliance service answered with an unusable response."""


class RemoteRuleEngine:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        api_key: str = "",
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.address = self.base_url
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
        )

    def close(self) -> None:
        if not self._client.is_closed:
            self._client.close()

    def detect_transfer_restriction(self, from_: str, to: str, amount: int) -> int:
        resp = self._client.get(
            "/restrictions",
            params={"from": from_, "to": to, "amount": str(amount)},
        )
        resp.raise_for_status()
        code = resp.json().get("code")
        if isinstance(code, bool) or not isinstance(code, int):
            raise RemoteEngineError(f"Invalid restriction code from {self.base_url}: {code!r}")
        logger.debug("Remote engine code=%d from=%s to=%s amount=%d", code, from_, to, amount)
        return code

    def message_for_restriction_code(self, code: int) -> str:
        resp = self._client.get(f"/restrictions/{code}/message")
        resp.raise_for_status()
        message = resp.json().get("message")
        if not isinstance(message, str):
            raise RemoteEngineError(f"Invalid restriction message from {self.base_url}")
        return message
