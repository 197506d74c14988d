"""Blocking JSON-over-HTTP POST for provider endpoints."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Mapping

import httpx

from jsonllm.errors import RequestCancelled, TransportError

logger = logging.getLogger(__name__)


class HttpTransport:
    """One POST per call, no retries. Owns its httpx.Client unless one is injected."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float | None = None,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            client = httpx.Client(timeout=timeout) if timeout is not None else httpx.Client()
        self.client = client

    def post(
        self,
        url: str,
        body: Mapping[str, Any],
        headers: Mapping[str, str],
        cancel: threading.Event | None = None,
    ) -> bytes:
        """
        POST `body` as JSON and return the raw response bytes.

        Raises:
            RequestCancelled: `cancel` was set before the request went out
            TransportError: network failure (status None) or non-2xx status
        """
        if cancel is not None and cancel.is_set():
            raise RequestCancelled()

        request_headers = dict(headers)
        request_headers["Content-Type"] = "application/json"
        content = json.dumps(body, ensure_ascii=False).encode("utf-8")

        logger.debug("POST %s (%d bytes)", url, len(content))
        try:
            response = self.client.post(url, content=content, headers=request_headers)
        except httpx.HTTPError as e:
            logger.error("Request to %s failed: %s", url, e)
            raise TransportError(f"error sending request: {e}") from e

        if not response.is_success:
            logger.warning("POST %s returned %d", url, response.status_code)
            raise TransportError(
                f"API returned non-2xx status code: {response.status_code}, body: {response.text}",
                status=response.status_code,
                body=response.text,
            )
        return response.content

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
