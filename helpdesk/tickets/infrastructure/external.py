"""
Ticket External Service Integrations
====================================

External services used by the help-desk:
- Notification webhook (email / chat fan-out lives behind it)
- YAML SLA policy file watcher
"""

import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from helpdesk.config import settings, TicketCategory
from helpdesk.core import ConfigurationException, NotificationException
from helpdesk.shared.infrastructure.error_channel import ErrorChannel
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application.dto import NotificationPayload
from helpdesk.tickets.application.interfaces import ISLAConfigProvider
from helpdesk.tickets.domain import SLAPolicy

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"SLA policy file changed: {event.src_path}")
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA policy holder with hot-reload support.

    Uses watchdog to monitor the YAML file and swap the policy without
    restarting the service. A broken edit keeps the previous policy.
    """

    def __init__(self):
        self._policy: Optional[SLAPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAPolicy:
        """
        Initial policy load.

        Raises:
            ConfigurationException: The file exists but is not a valid policy
        """
        self._path = Path(path)
        try:
            self._policy = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(f"Invalid SLA policy in {self._path}: {e}") from e
        return self._policy

    def _load_from_file(self, path: Path) -> SLAPolicy:
        """Load and parse the YAML file."""
        if not path.exists():
            logger.warning(f"SLA policy file not found: {path}, using defaults")
            return SLAPolicy()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return SLAPolicy(**data)

    def reload(self) -> bool:
        """Reload the policy from file."""
        if self._path is None:
            return False

        try:
            new_policy = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error(f"Failed to reload SLA policy, keeping previous one: {e}")
            return False

        with self._lock:
            self._policy = new_policy
        logger.info("SLA policy reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skipped when the file doesn't exist or the platform has no file
        notification support.
        """
        if self._path is None:
            raise RuntimeError("Policy not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(f"SLA policy file doesn't exist, skipping file watch: {self._path}")
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info(f"Started watching SLA policy file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static policy: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def policy(self) -> SLAPolicy:
        """Get current policy."""
        if self._policy is None:
            raise RuntimeError("SLA policy not loaded")
        with self._lock:
            return self._policy

    def get_policy(self) -> SLAPolicy:
        return self.policy


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for a flaky downstream.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout,
                },
            )


class WebhookNotifier:
    """
    Notification webhook client.

    Posts one JSON payload per event with a bearer token. Delivery is
    at-most-once: no retries, and failures go to the error channel instead
    of propagating to the caller.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        error_channel: Optional[ErrorChannel] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self._token = token if token is not None else settings.notification_webhook_token
        self._timeout = timeout_seconds or settings.notification_timeout_seconds
        self._error_channel = error_channel or ErrorChannel()
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http_client

    @staticmethod
    def _build_message(payload: NotificationPayload) -> Dict[str, Any]:
        """Webhook body. Others tickets are routed to HR downstream."""
        body = payload.model_dump()
        if body.get("category") == TicketCategory.OTHERS:
            body["category"] = TicketCategory.HR
        return body

    @staticmethod
    def _missing_fields(payload: NotificationPayload) -> list:
        return [
            name for name in ("ticket_id", "subject", "status")
            if not (getattr(payload, name) or "").strip()
        ]

    async def dispatch(self, payload: NotificationPayload) -> bool:
        """
        Send one notification.

        Returns:
            True if the webhook accepted it, False otherwise (never raises)
        """
        missing = self._missing_fields(payload)
        if missing:
            await self._error_channel.record(
                f"notification rejected: ticketId={payload.ticket_id}",
                f"Missing required fields: {', '.join(missing)}",
            )
            return False

        if not self._url:
            logger.debug("Notification webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"ticket_id": payload.ticket_id},
            )
            return False

        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            client = await self._get_client()
            response = await client.post(self._url, json=self._build_message(payload), headers=headers)
            if response.status_code >= 400:
                raise NotificationException(
                    f"webhook returned {response.status_code}",
                    details={"body": response.text[:500]},
                )
        except (httpx.HTTPError, NotificationException) as e:
            self._circuit_breaker.record_failure()
            await self._error_channel.record(
                f"sendNotification: ticketId={payload.ticket_id}, status={payload.status}",
                e,
                ticket_id=payload.ticket_id,
            )
            return False

        self._circuit_breaker.record_success()
        logger.info(
            "Notification sent",
            extra={"ticket_id": payload.ticket_id, "status": payload.status},
        )
        return True

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
