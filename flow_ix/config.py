"""
Client configuration: access-node endpoint, timeouts, retry policy and default
compute limit.

- `Config` is frozen; every resolver and `send` take it as an explicit argument
  and fall back to `DEFAULT` only when the caller passes nothing.
- Supports overrides via environment variables (FLOW_IX_*) and per-call keyword
  overrides (`Config.with_overrides`).
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Optional

from .version import __version__

_DEFAULT_NODE = "http://127.0.0.1:8888"
_DEFAULT_COMPUTE_LIMIT = 100


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


def _ensure_scheme(url: str, allowed: tuple[str, ...] = ("http", "https")) -> str:
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ValueError(f"URL must start with {allowed}, got: {url!r}")
    return url.rstrip("/")


@dataclass(slots=True, frozen=True)
class Config:
    # Access node
    node: str = _DEFAULT_NODE
    # HTTP behavior
    timeout_s: float = 10.0
    max_retries: int = 3
    backoff_base_s: float = 0.25
    # Transaction defaults
    compute_limit: int = _DEFAULT_COMPUTE_LIMIT
    # Headers / identity
    user_agent: str = field(default_factory=lambda: f"flow-ix-py/{__version__}")

    def __post_init__(self) -> None:
        object.__setattr__(self, "node", _ensure_scheme(self.node))
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.compute_limit <= 0:
            raise ValueError("compute_limit must be positive")

    @classmethod
    def from_env(cls, prefix: str = "FLOW_IX_") -> "Config":
        """
        Create config from environment variables:

        FLOW_IX_NODE            (http/https access node base URL)
        FLOW_IX_TIMEOUT         (float seconds)
        FLOW_IX_MAX_RETRIES     (int)
        FLOW_IX_BACKOFF         (float seconds, first backoff delay)
        FLOW_IX_COMPUTE_LIMIT   (int)
        FLOW_IX_USER_AGENT      (str)
        """
        return cls(
            node=_env(f"{prefix}NODE", _DEFAULT_NODE) or _DEFAULT_NODE,
            timeout_s=float(_env(f"{prefix}TIMEOUT", "10.0")),
            max_retries=int(_env(f"{prefix}MAX_RETRIES", "3")),
            backoff_base_s=float(_env(f"{prefix}BACKOFF", "0.25")),
            compute_limit=int(_env(f"{prefix}COMPUTE_LIMIT", str(_DEFAULT_COMPUTE_LIMIT))),
            user_agent=_env(f"{prefix}USER_AGENT", f"flow-ix-py/{__version__}")
            or f"flow-ix-py/{__version__}",
        )

    @classmethod
    def with_overrides(cls, base: Optional["Config"] = None, **overrides: Any) -> "Config":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys and None values are ignored.
        """
        base = base or DEFAULT
        known = set(base.to_dict())
        return replace(base, **{k: v for k, v in overrides.items() if k in known and v is not None})

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def resolve_config(config: Optional[Config] = None, **overrides: Any) -> Config:
    """Return `config` (or `DEFAULT`) with per-call overrides such as `node=...` applied."""
    if not overrides:
        return config or DEFAULT
    return Config.with_overrides(config, **overrides)


# Process-wide default; immutable, read from the environment once at import.
DEFAULT = Config.from_env()

__all__ = ["Config", "DEFAULT", "resolve_config"]
