"""
Health External Service Integrations
=====================================

External services for campus health:
- YAML SLA policy with watchdog hot-reload
- Slack webhook breach notifications
- APScheduler job for the periodic SLA sweep
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import yaml
import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from campus_health.config import settings
from campus_health.core import ConfigurationException
from campus_health.health.application import IBreachNotifier, ISLAPolicyProvider
from campus_health.health.domain import Issue, SLAPolicy
from campus_health.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA policy file changes."""

    def __init__(self, policy_manager: "SLAPolicyManager", policy_path: Path):
        self.policy_manager = policy_manager
        self.policy_path = policy_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.policy_path.resolve():
            logger.info("SLA policy file changed", extra={"path": str(event.src_path)})
            self.policy_manager.reload()


class SLAPolicyManager(ISLAPolicyProvider):
    """
    Thread-safe SLA policy manager with hot-reload support.

    Uses watchdog to monitor the policy file and reload it without
    restarting the service. A broken edit keeps the last good policy.
    """

    def __init__(self):
        self._policy: Optional[SLAPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAPolicy:
        """Initial policy load."""
        self._path = Path(path)
        policy = self._load_from_file(self._path)
        with self._lock:
            self._policy = policy
        return policy

    def _load_from_file(self, path: Path) -> SLAPolicy:
        """Load and validate the YAML policy file."""
        if not path.exists():
            logger.warning("SLA policy file not found, using defaults", extra={"path": str(path)})
            return SLAPolicy()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationException(f"SLA policy in {path} must be a mapping")

        try:
            return SLAPolicy(**data)
        except ValidationError as e:
            raise ConfigurationException(f"Invalid SLA policy in {path}", {"errors": e.errors()})

    def reload(self) -> bool:
        """Reload policy from file."""
        if self._path is None:
            return False

        try:
            new_policy = self._load_from_file(self._path)
        except (ConfigurationException, yaml.YAMLError, OSError) as e:
            logger.error("Failed to reload SLA policy, keeping previous", extra={"error": str(e)})
            return False

        with self._lock:
            self._policy = new_policy
        logger.info("SLA policy reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skipped when the file does not exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Policy not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Policy file doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            handler = PolicyFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching SLA policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static policy", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_policy(self) -> SLAPolicy:
        with self._lock:
            if self._policy is None:
                raise RuntimeError("SLA policy not loaded")
            return self._policy


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for the notification webhook.

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
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
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
                extra={"failure_count": self._failure_count, "recovery_timeout": self.recovery_timeout}
            )


class SlackBreachNotifier(IBreachNotifier):
    """
    Slack webhook notifier for SLA breaches found by the sweep.

    Retries with exponential backoff behind a circuit breaker. Delivery
    failures are logged and reported as False, never raised: a missed
    notification must not stop the sweep.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        channel: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_base_delay: float = 1.0
    ):
        self._webhook_url = webhook_url if webhook_url is not None else settings.slack_webhook_url
        self._channel = channel or settings.slack_channel
        self._timeout = timeout_seconds or settings.slack_timeout_seconds
        self._http_client = http_client
        self._retry_base_delay = retry_base_delay
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def build_message(self, issue: Issue) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        deadline = issue.sla_deadline.isoformat() if issue.sla_deadline else "n/a"
        return {
            "channel": self._channel,
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": "SLA Breach: issue escalated"}
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*Issue:*\n{issue.title or issue.id}"},
                        {"type": "mrkdwn", "text": f"*Campus:*\n{issue.campus_id}"},
                        {"type": "mrkdwn", "text": f"*Severity:*\n{issue.severity_level.title()}"},
                        {"type": "mrkdwn", "text": f"*Deadline:*\n{deadline}"},
                    ]
                }
            ]
        }

    async def notify_breach(self, issue: Issue, max_retries: int = 3) -> bool:
        if not self._webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning("Circuit breaker open, skipping Slack notification", extra={"issue_id": issue.id})
            return False

        message = self.build_message(issue)

        for attempt in range(max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)
                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info("Breach notification sent", extra={"issue_id": issue.id})
                    return True
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={"error": str(e), "attempt": attempt + 1, "issue_id": issue.id}
                )

            if attempt < max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * 2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class SLASweepScheduler:
    """
    Wrapper for APScheduler running the SLA sweep in the background.

    max_instances=1 keeps sweeps from overlapping within one process;
    overlapping sweeps across processes are tolerated since each flip
    and each health sync is idempotent.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        if self._running:
            logger.warning("SLA sweep scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_sweep",
            name="SLA Breach Sweep",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA sweep scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self._running:
            return
        if self._scheduler:
            self._scheduler.shutdown(wait=True)
        self._running = False
        logger.info("SLA sweep scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
