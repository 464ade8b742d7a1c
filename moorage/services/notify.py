"""Fire-and-forget notifications for operation events.

Each ``notify`` call hands the event to a background thread and returns
immediately; callers never see the delivery result. Two notifications
that act on the same container at once are not ordered against each
other.
"""
import subprocess
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import requests

from moorage.core.logger import get_logger
from moorage.core.retry import retry

logger = get_logger(__name__)


class Notifier(ABC):
    """Delivers ``(event, detail)`` pairs somewhere."""

    def notify(self, event: str, detail: str = "") -> Optional[threading.Thread]:
        """Dispatch an event in the background.

        Returns:
            The delivery thread (callers normally ignore it)
        """
        thread = threading.Thread(
            target=self._deliver_safely,
            args=(event, detail),
            name=f"notify-{event}",
        )
        thread.start()
        return thread

    def _deliver_safely(self, event: str, detail: str) -> None:
        try:
            self.deliver(event, detail)
        except Exception as e:
            logger.warning(f"{type(self).__name__} failed for {event}: {e}")

    @abstractmethod
    def deliver(self, event: str, detail: str) -> None:
        """Deliver synchronously. Runs on the background thread."""


class NullNotifier(Notifier):
    """Drops every event."""

    def notify(self, event: str, detail: str = "") -> None:
        return None

    def deliver(self, event: str, detail: str) -> None:
        pass


class HookNotifier(Notifier):
    """Runs a user script as ``<script> <event> <detail>``."""

    def __init__(self, script: str, timeout: int = 60):
        self.script = script
        self.timeout = timeout

    def deliver(self, event: str, detail: str) -> None:
        result = subprocess.run(
            [self.script, event, detail],
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        if result.returncode != 0:
            output = (result.stdout + result.stderr).strip()
            logger.warning(f"Hook {self.script} failed for {event} (exit {result.returncode}): {output}")
        else:
            logger.debug(f"Hook {self.script} executed for {event}")


class WebhookNotifier(Notifier):
    """Posts ``{"text": ...}`` to an incoming-webhook URL (Slack compatible)."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    @staticmethod
    def format_message(event: str, detail: str) -> str:
        return f"[{event}] {detail}" if detail else f"[{event}]"

    @retry(max_attempts=3, delay=1.0, exceptions=(requests.RequestException,))
    def _post(self, payload: dict) -> None:
        response = requests.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()

    def deliver(self, event: str, detail: str) -> None:
        self._post({"text": self.format_message(event, detail)})


class CompositeNotifier(Notifier):
    """Fans an event out to several notifiers."""

    def __init__(self, notifiers: Sequence[Notifier]):
        self.notifiers: List[Notifier] = list(notifiers)

    def notify(self, event: str, detail: str = "") -> None:
        for notifier in self.notifiers:
            notifier.notify(event, detail)
        return None

    def deliver(self, event: str, detail: str) -> None:
        for notifier in self.notifiers:
            notifier.deliver(event, detail)


def build_notifier(hook_script: Optional[str] = None, webhook_url: Optional[str] = None) -> Notifier:
    """Create the notifier for the configured hook script and webhook."""
    notifiers: List[Notifier] = []
    if hook_script:
        notifiers.append(HookNotifier(hook_script))
    if webhook_url:
        notifiers.append(WebhookNotifier(webhook_url))

    if not notifiers:
        return NullNotifier()
    if len(notifiers) == 1:
        return notifiers[0]
    return CompositeNotifier(notifiers)
