"""Error message sanitization and log previews."""

from __future__ import annotations

import os
import re


def sanitize_error(message: str) -> str:
    """Sanitize error messages to prevent credential and path leakage."""
    if not message:
        return message

    sanitized = message
    sanitized = re.sub(r"sk-[a-zA-Z0-9_-]{20,}", "[REDACTED_KEY]", sanitized)
    sanitized = re.sub(r"Bearer\s+\S+", "Bearer [REDACTED]", sanitized)
    sanitized = re.sub(r"Authorization:\s*\S+", "Authorization: [REDACTED]", sanitized)
    # user:password@host in endpoint URLs
    sanitized = re.sub(r"(https?://)[^/\s:@]+:[^/\s@]+@", r"\1[REDACTED]@", sanitized)

    home = os.environ.get("USERPROFILE") or os.environ.get("HOME") or ""
    if home and home != "/":
        sanitized = sanitized.replace(home, "[USER_HOME]")

    return sanitized


def preview(text: str, limit: int = 200) -> str:
    """Single-line, truncated rendering of raw model output for console messages."""
    flat = " ".join((text or "").split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3] + "..."
