"""
Built-in job processors.

These cover infrastructure concerns shared by every deployment; business
processors (tax calculations, document OCR, notifications) are registered by
their own modules on a ProcessorRegistry.
"""

import logging
from typing import Any

import httpx

from jobworker.constants import QueueName
from jobworker.worker.processors import ProcessorRegistry

logger = logging.getLogger(__name__)

HTTP_METHODS_WITH_BODY = ("POST", "PUT", "PATCH")

builtin_processors = ProcessorRegistry()


class EchoProcessor:
    """
    Echo processor for smoke testing a deployed worker.

    Simply returns the payload.
    """

    async def process(self, payload: dict[str, Any]) -> dict[str, Any]:
        logger.info("Echo job executing")
        return {"echo": payload}


class HttpRequestProcessor:
    """
    Call an external HTTP endpoint (webhooks, public registry lookups).

    Payload should contain:
    - url: The URL to request
    - method: HTTP method (GET, POST, etc.)
    - headers: Optional headers
    - body: Optional JSON request body

    Non-2xx responses raise, so the job is retried by the worker.
    """

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self._timeout = timeout
        self._transport = transport

    def validate(self, payload: dict[str, Any]) -> bool:
        return isinstance(payload.get("url"), str) and bool(payload["url"])

    async def process(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = payload["url"]
        method = payload.get("method", "GET").upper()
        headers = payload.get("headers", {})
        body = payload.get("body")

        logger.info("HTTP request job", extra={"method": method, "url": url})

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.request(
                method=method,
                url=url,
                headers=headers,
                json=body if method in HTTP_METHODS_WITH_BODY else None,
            )
            response.raise_for_status()

        return {
            "status_code": response.status_code,
            "body": response.text[:1000],  # Truncate response
        }


for _queue in QueueName:
    builtin_processors.register(_queue, "echo", EchoProcessor())

builtin_processors.register(QueueName.INTEGRACOES_EXTERNAS, "http_request", HttpRequestProcessor())
