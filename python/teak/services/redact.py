"""Log guard for AI calls.

Never log:
- API keys or bearer tokens
- Prompts or card content sent to a model
- Transcript text

Allowed (with suffix):
- _chars, _length: length of text
- _sha256, _hash: hash of text
"""

import os

import structlog

FORBIDDEN_KEYS = frozenset(
    {
        "prompt",
        "content",
        "api_key",
        "bearer",
        "token",
        "secret",
        "transcript",
        "summary",
        "raw_body",
    }
)

REDACTED_SUFFIXES = ("_sha256", "_hash", "_length", "_chars")


def safe_kv(*, _env: str | None = None, **kwargs) -> dict:
    """Return kwargs after checking that no forbidden key is present.

    Raises ValueError in local/test when a forbidden key is used without a
    redacted suffix. Deployed environments log a warning instead.

    Usage:
        logger.info("llm.request.started", **safe_kv(
            provider="groq",
            model_name="openai/gpt-oss-20b",
            message_chars=1234,
        ))
    """
    violations = [
        key
        for key in kwargs
        if key in FORBIDDEN_KEYS and not any(key.endswith(s) for s in REDACTED_SUFFIXES)
    ]

    if violations:
        msg = f"Forbidden log keys without redacted suffix: {violations}"
        env = _env or os.environ.get("TEAK_ENV", "local")
        if env in ("local", "test"):
            raise ValueError(msg)
        structlog.get_logger("teak.services.redact").warning(
            "safe_kv_violation", forbidden_keys=violations
        )

    return kwargs
