"""
HTTP client for the collection endpoint.

POST {endpoint}/track, /identify and /group with an x-api-key header and a
JSON array body. Non-2xx responses and network errors are failures; event
batches get a bounded number of attempts with linear backoff.
"""

import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from ..errors import DeliveryError, NotInitializedError
from ..telemetry.redaction import PIIScrubber
from ..telemetry.schema import EventRecord


Payload = Union[Dict[str, Any], List[Dict[str, Any]]]


class CollectorClient:
    """Sends payloads to the collection endpoint."""

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        client: Optional[httpx.AsyncClient] = None,
        scrubber: Optional[PIIScrubber] = None,
        attempts: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        debug: bool = False
    ):
        """
        Initialize client.

        Args:
            api_key: Value for the x-api-key header
            endpoint: Base URL, e.g. https://collector.example.com/api
            client: Shared httpx client; one is created (and owned) if None
            scrubber: PII scrubber applied to event batches
            attempts: Total attempts for event batches
            retry_delay: Base delay in seconds; attempt n waits retry_delay * n
            timeout: Request timeout in seconds
            sleep: Awaitable sleep, injectable for tests
            debug: Print outgoing batches to stderr
        """
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.scrubber = scrubber or PIIScrubber()
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.sleep = sleep
        self.debug = debug

        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_events(self, events: List[EventRecord]) -> Any:
        """
        Scrub and deliver a batch of events to /track.

        Args:
            events: Records with device ids already stamped

        Returns:
            Decoded response body (None if empty or not JSON)

        Raises:
            NotInitializedError: If no API key is configured
            DeliveryError: After every attempt has failed
        """
        cleaned = self.scrubber.scrub([event.to_dict() for event in events])
        if self.debug:
            print(f"Debug: Sending events:\n{json.dumps(cleaned, indent=2, default=str)}",
                  file=sys.stderr)
        return await self.post("/track", cleaned, attempts=self.attempts)

    async def post(self, path: str, payload: Payload, attempts: int = 1) -> Any:
        """
        POST a JSON payload with up to `attempts` tries.

        Raises:
            NotInitializedError: If no API key is configured
            DeliveryError: After the final failed attempt
        """
        if not self.api_key:
            raise NotInitializedError()

        url = f"{self.endpoint}{path}"
        headers = {"Content-Type": "application/json", "x-api-key": self.api_key}

        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.post(url, json=payload, headers=headers)
                if not response.is_success:
                    raise DeliveryError(
                        f"HTTP error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                        attempts=attempt,
                    )
                return _decode_body(response)
            except (httpx.HTTPError, DeliveryError) as e:
                if attempt >= attempts:
                    print(f"Error: Failed to send {path} after {attempt} attempt(s): {e}",
                          file=sys.stderr)
                    status = e.status_code if isinstance(e, DeliveryError) else None
                    raise DeliveryError(str(e), status_code=status, attempts=attempt) from e
                await self.sleep(self.retry_delay * attempt)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
