"""Domain event webhook client with exponential backoff retry logic"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

import httpx
from lendsave.config import settings
from lendsave.domain.events import DomainEvent
from lendsave.infrastructure.observability.metrics import webhook_failure_counter, webhook_latency_histogram


class EventWebhookClient:
    """
    Forwards committed domain events to an external HTTP endpoint.

    As an event bus handler it only queues the event; a single background
    worker posts payloads in publish order, so a slow or dead endpoint never
    holds up the use case that published them. Call close() on shutdown to
    drain the queue.
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        timeout: float | None = None,
    ):
        self.webhook_url = webhook_url or settings.event_webhook_url
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.webhook_backoff_base
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.transport = transport
        self.sleep = sleep
        self.logger = logger or logging.getLogger(__name__)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="event-webhook")

    def __call__(self, event: DomainEvent) -> Future:
        """Event bus handler entry point; queues the event and returns at once"""
        return self._executor.submit(self._deliver, event.to_payload())

    def close(self, wait: bool = True) -> None:
        """Stop accepting events; with wait, block until queued deliveries finish"""
        self._executor.shutdown(wait=wait)

    def _deliver(self, payload: Dict[str, Any]) -> None:
        try:
            self.send_event(payload)
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            self.logger.error(
                "Event webhook delivery failed",
                extra={
                    "event_type": payload.get("event_type"),
                    "event_id": payload.get("event_id"),
                    "attempts": self.max_retries,
                    "error": str(e),
                },
            )

    def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Send a domain event payload with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 4xx/5xx responses and network failures
        - Tracks latency histogram and failure counter

        Raises the last error once max_retries attempts have failed.
        """
        attempt = 0
        with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    self.logger.warning(
                        "Event webhook attempt failed",
                        extra={
                            "event_type": payload.get("event_type"),
                            "attempt": attempt,
                            "backoff_seconds": backoff,
                            "error": str(e),
                        },
                    )
                    self.sleep(backoff)
