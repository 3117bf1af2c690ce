"""
Loyalty Tokens Configuration

All settings come from environment variables (``LOYALTY_*``). The
administrator address is required; everything else has a default.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .constants import ZERO_ADDRESS
from .exceptions import ConfigurationError
from .logging_config import setup_logging

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {raw!r}")


@dataclass(frozen=True)
class LoyaltyConfig:
    """Construction-time settings for a loyalty contract."""

    administrator: str
    custody_address: str = ""
    transferable: bool = False
    collection_name: str = "Loyalty Credential"
    collection_symbol: str = "LOYAL"
    reward_symbol: str = "RWD"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    environment: str = "production"

    def __post_init__(self) -> None:
        if not self.administrator or self.administrator.lower() == ZERO_ADDRESS:
            raise ConfigurationError("administrator address is required")
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ConfigurationError(f"invalid log level {self.log_level!r}")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "LoyaltyConfig":
        """
        Build configuration from environment variables.

        Raises:
            ConfigurationError: If LOYALTY_ADMIN_ADDRESS is missing or a value
                cannot be parsed
        """
        env = os.environ if env is None else env
        administrator = env.get("LOYALTY_ADMIN_ADDRESS", "").strip()
        if not administrator:
            raise ConfigurationError(
                "LOYALTY_ADMIN_ADDRESS environment variable is required"
            )
        config = cls(
            administrator=administrator,
            custody_address=env.get("LOYALTY_CUSTODY_ADDRESS", "").strip(),
            transferable=_get_bool(env, "LOYALTY_TRANSFERABLE", False),
            collection_name=env.get("LOYALTY_COLLECTION_NAME", cls.collection_name),
            collection_symbol=env.get("LOYALTY_COLLECTION_SYMBOL", cls.collection_symbol),
            reward_symbol=env.get("LOYALTY_REWARD_SYMBOL", cls.reward_symbol),
            log_level=env.get("LOYALTY_LOG_LEVEL", "INFO").strip() or "INFO",
            log_file=env.get("LOYALTY_LOG_FILE") or None,
            environment=env.get("LOYALTY_ENVIRONMENT", "production"),
        )
        logger.debug(
            "Loaded loyalty configuration",
            extra={"event": "config.loaded", "symbol": config.collection_symbol},
        )
        return config

    def configure_logging(self, name: str = "loyalty_tokens") -> logging.Logger:
        """Install JSON logging for the package using these settings."""
        return setup_logging(
            name=name,
            log_file=self.log_file,
            level=self.log_level,
            environment=self.environment,
        )
