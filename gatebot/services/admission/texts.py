"""
Rendering of the challenge messages from configured templates.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class AdmissionTexts:
    """Message templates with the expected answer baked in."""

    answer: str
    welcome_template: str
    retry_template: str
    join_template: str
    ban_template: str = ""

    def welcome(self, name: str, timeout: timedelta, attempts: int) -> str:
        seconds = int(timeout.total_seconds())
        return self.welcome_template.format_map({
            "name": name,
            "answer": self.answer,
            "minutes": max(1, math.ceil(seconds / 60)),
            "seconds": seconds,
            "attempts": attempts,
        })

    def retry(self, name: str, remaining: int) -> str:
        return self.retry_template.format_map({
            "name": name,
            "answer": self.answer,
            "remaining": remaining,
        })

    def join(self, name: str) -> str:
        return self.join_template.format_map({"name": name})

    def ban(self, name: str) -> str | None:
        """Ban notice, or None when no ban template is configured."""
        if not self.ban_template:
            return None
        return self.ban_template.format_map({"name": name})
