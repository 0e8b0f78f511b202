"""Map raw provider failure messages to user-facing error categories."""

import re

PROMPT_VIOLATION = "prompt_violation"
GENERIC_FAILURE = "generic_failure"

_CONTENT_VIOLATION_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b422\b",
        r"content.?moderat",
        r"safety.?filter",
        r"nsfw",
        r"sensitive.?content",
        r"violat",
        r"blocked",
        r"prohibited",
        r"inappropriate",
        r"not.?allowed",
        r"policy",
        r"content.?filter",
        r"审核",
        r"违规",
        r"敏感",
        r"合规",
    )
)


def classify_error(raw_error: str | None) -> str:
    if not raw_error:
        return GENERIC_FAILURE
    if any(pattern.search(raw_error) for pattern in _CONTENT_VIOLATION_PATTERNS):
        return PROMPT_VIOLATION
    return GENERIC_FAILURE
