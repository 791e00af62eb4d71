"""Webhook notification sinks for job lifecycle transitions."""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional, Set

import httpx

from .models import JobDescriptor
from .store import to_document
from ..observability import log_advanced

ACTION_SAVE = "job_save"
ACTION_CLEAR = "job_clear"


class NotificationSink:
    """
    Best-effort callback fired on save/clear.

    notify() must never raise; a failing sink cannot roll back or fail
    the lifecycle operation that triggered it.
    """

    def notify(self, action: str, job_name: str, job: JobDescriptor) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullNotificationSink(NotificationSink):
    """Sink used when no webhook is configured."""

    def notify(self, action: str, job_name: str, job: JobDescriptor) -> None:
        return None


class WebhookNotificationSink(NotificationSink):
    """Posts lifecycle events to a webhook URL with retry logic."""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 5.0,
        headers: Optional[Dict[str, str]] = None,
        max_retries: int = 2,
        background: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize webhook sink.

        Args:
            webhook_url: Endpoint receiving the JSON POST
            timeout: Request timeout in seconds
            headers: Optional extra headers (e.g., API keys)
            max_retries: Attempts per notification before giving up
            background: Deliver on a worker thread so notify() returns at once
            transport: Optional httpx transport, used by tests
        """
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.headers = headers or {}
        self.max_retries = max(1, max_retries)
        self.background = background
        self._transport = transport
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    @staticmethod
    def build_payload(action: str, job_name: str, job: JobDescriptor) -> Dict[str, Any]:
        return {
            "action": action,
            "job_name": job_name,
            "job": to_document(job),
        }

    def notify(self, action: str, job_name: str, job: JobDescriptor) -> None:
        try:
            payload = self.build_payload(action, job_name, job)
            if not self.background:
                self._deliver(payload)
                return
            with self._lock:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(
                        max_workers=1, thread_name_prefix="archiver-webhook"
                    )
                future = self._executor.submit(self._deliver, payload)
                self._pending.add(future)
            # Runs inline when the future is already done, so outside the lock
            future.add_done_callback(self._discard)
        except Exception as e:
            log_advanced(
                "ERROR", "webhook",
                f"Could not dispatch {action} webhook for job {job_name}: {e}",
            )

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _deliver(self, payload: Dict[str, Any]) -> bool:
        """
        Send one payload, retrying with backoff. Never raises.

        Returns:
            True if the webhook accepted the payload
        """
        headers = {"Content-Type": "application/json", **self.headers}
        action = payload.get("action")
        job_name = payload.get("job_name")

        for attempt in range(self.max_retries):
            try:
                with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                    response = client.post(self.webhook_url, json=payload, headers=headers)
                    response.raise_for_status()

                log_advanced(
                    "DEBUG", "webhook",
                    f"Webhook {action} delivered for job {job_name} (attempt {attempt + 1})",
                )
                return True

            except httpx.TimeoutException as e:
                log_advanced(
                    "WARNING", "webhook",
                    f"Webhook {action} timeout for job {job_name} "
                    f"(attempt {attempt + 1}/{self.max_retries}): {e}",
                )
            except httpx.HTTPStatusError as e:
                log_advanced(
                    "WARNING", "webhook",
                    f"Webhook {action} for job {job_name} got HTTP "
                    f"{e.response.status_code} (attempt {attempt + 1}/{self.max_retries})",
                )
            except Exception as e:
                log_advanced(
                    "ERROR", "webhook",
                    f"Webhook {action} for job {job_name} failed "
                    f"(attempt {attempt + 1}/{self.max_retries}): {e}",
                )

            # Backoff: 0.5s, 1s, 2s
            if attempt + 1 < self.max_retries:
                time.sleep(0.5 * 2**attempt)

        log_advanced(
            "ERROR", "webhook",
            f"Webhook {action} for job {job_name} dropped after {self.max_retries} attempts",
        )
        return False

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for queued deliveries to finish."""
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            try:
                future.result(timeout=timeout)
            except Exception as e:
                log_advanced("WARNING", "webhook", f"Pending webhook did not finish: {e}")

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)


def build_notification_sink(
    webhook_url: Optional[str],
    timeout: float = 5.0,
) -> NotificationSink:
    if not webhook_url:
        return NullNotificationSink()
    return WebhookNotificationSink(webhook_url, timeout=timeout)
