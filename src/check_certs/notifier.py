#!/usr/bin/env python3
"""
Mattermost Notifier for scan summaries
"""
import logging
from typing import Optional

import requests

from .report import CONNECTION_ERROR, ScanSummary

logger = logging.getLogger(__name__)

# Most urgent lines listed in a summary post
MAX_LISTED = 10

_URGENCY = {
    "expiring_shortly": 0,
    "expiring_soon": 1,
    "sunset_algorithm": 2,
    CONNECTION_ERROR: 3,
}


class MattermostNotifier:
    def __init__(self, webhook_url: str, username: str = "check-certs",
                 icon_emoji: str = ":lock:", timeout: float = 10):
        self.webhook_url = webhook_url
        self.username = username
        self.icon_emoji = icon_emoji
        self.timeout = timeout

    def build_summary_text(self, summary: ScanSummary) -> str:
        counts = summary.findings
        parts = []
        if counts.get("expiring_shortly"):
            parts.append(f"🚨 **{counts['expiring_shortly']} certificates expiring within 48 hours!**")
        if counts.get("expiring_soon"):
            parts.append(f"⚠️ **{counts['expiring_soon']} certificates expiring soon**")
        if counts.get("sunset_algorithm"):
            parts.append(f"⚠️ {counts['sunset_algorithm']} certificates using a sunset signature algorithm")
        if summary.connection_errors:
            parts.append(f"❌ {summary.connection_errors} hosts could not be checked")

        message_lines = [
            "📊 **Certificate Scan Summary**",
            "",
            f"**Hosts:** {summary.hosts}  **Certificates:** {summary.certificates}",
            "",
        ]
        message_lines.extend(parts or ["✅ No issues found"])

        urgent = sorted(summary.lines, key=lambda line: _URGENCY.get(line.finding, 99))[:MAX_LISTED]
        if urgent:
            message_lines.extend(["", "### Most Urgent", ""])
            message_lines.extend(f"- {line.message}" for line in urgent)

        message_lines.append("---")
        message_lines.append("_check-certs_")
        return "\n".join(message_lines)

    def send_scan_summary(self, summary: ScanSummary, webhook_url: Optional[str] = None) -> bool:
        """
        Send a summary of one scan run to Mattermost

        Args:
            summary: Aggregated scan summary
            webhook_url: Override for the configured webhook

        Returns:
            True if notification sent successfully
        """
        payload = {
            "username": self.username,
            "icon_emoji": self.icon_emoji,
            "text": self.build_summary_text(summary),
        }

        target_url = webhook_url or self.webhook_url
        try:
            response = requests.post(target_url, json=payload, timeout=self.timeout)
            if response.status_code == 200:
                logger.info(f"Sent scan summary for {summary.hosts} host(s)")
                return True
            logger.error(f"Failed to send notification: {response.status_code} - {response.text}")
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f"Error sending notification to Mattermost: {e}")
            return False
