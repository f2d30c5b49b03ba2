"""
Notification dispatcher.

Delivery is best-effort: each channel is attempted independently and
concurrently, and a failing channel is logged as a warning without
affecting the others or the run's exit code.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List

from ..errors import NotificationError
from .models import DriftReport, Severity

logger = logging.getLogger(__name__)

STATUS_SENT = "sent"
STATUS_SKIPPED = "skipped"
STATUS_DISABLED = "disabled"
STATUS_FAILED = "failed"


class NotificationDispatcher:
    """Fans a drift report out to the configured notification channels."""

    def __init__(self, channels: Iterable):
        """
        Initialize the dispatcher.

        Args:
            channels: Notification channels exposing ``name``, ``enabled``,
                ``should_notify(report)`` and ``send(report, report_path)``
        """
        self.channels = list(channels)
        self._announced_disabled = set()

    def dispatch(self, report: DriftReport, report_path) -> Dict[str, str]:
        """
        Notify every applicable channel about a report.

        Returns:
            Mapping of channel name to delivery status
        """
        results = {}

        if report.severity == Severity.NONE:
            logger.info("No drift detected, skipping notifications")
            return {channel.name: STATUS_SKIPPED for channel in self.channels}

        active: List = []
        for channel in self.channels:
            if not channel.enabled:
                if channel.name not in self._announced_disabled:
                    logger.info(f"Skipping {channel.name} notification (channel not configured)")
                    self._announced_disabled.add(channel.name)
                results[channel.name] = STATUS_DISABLED
            elif not channel.should_notify(report):
                logger.debug(f"{channel.name} does not notify for {report.severity.name} drift")
                results[channel.name] = STATUS_SKIPPED
            else:
                active.append(channel)

        if not active:
            return results

        with ThreadPoolExecutor(max_workers=len(active), thread_name_prefix="notify") as executor:
            futures = {
                channel.name: executor.submit(channel.send, report, str(report_path))
                for channel in active
            }

            for name, future in futures.items():
                try:
                    future.result()
                    results[name] = STATUS_SENT
                except NotificationError as e:
                    logger.warning(f"Failed to send {name} notification: {e}")
                    results[name] = STATUS_FAILED
                except Exception as e:
                    logger.warning(f"Unexpected error in {name} notification: {e}")
                    results[name] = STATUS_FAILED

        return results
