"""
Handler configuration.

Explicit arguments win over environment variables, which win over defaults.

Environment variables:
    RESTLAYER_SERVICE_NAME: Name used in log messages (default "restlayer").
    RESTLAYER_HANDLE_EXCEPTIONS: Map failures to error responses instead of
        raising them (default true).
    RESTLAYER_LOG_EXPECTED_ERRORS: Log client errors (4xx) at INFO (default true).
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

TRUE_VALUES = ('true', '1', 'yes', 'on')
FALSE_VALUES = ('false', '0', 'no', 'off')


def env_flag(name: str, default: bool, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Read a boolean flag from the environment."""
    environ = os.environ if environ is None else environ
    env_value = environ.get(name, '').strip().lower()
    if env_value in TRUE_VALUES:
        return True
    elif env_value in FALSE_VALUES:
        return False
    if env_value:
        logger.warning(f"Ignoring unrecognised value {env_value!r} for {name}")
    return default


@dataclass(frozen=True)
class HandlerConfig:
    """Configuration for a ProxyHandler."""

    service_name: str = "restlayer"
    handle_exceptions: bool = True
    log_expected_errors: bool = True

    @classmethod
    def from_env(
        cls,
        service_name: Optional[str] = None,
        handle_exceptions: Optional[bool] = None,
        log_expected_errors: Optional[bool] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "HandlerConfig":
        """Build a config from explicit arguments and the environment."""
        environ = os.environ if environ is None else environ
        defaults = cls()

        # Service name: arg > env > default
        final_service = service_name or environ.get('RESTLAYER_SERVICE_NAME') or defaults.service_name

        if handle_exceptions is None:
            handle_exceptions = env_flag('RESTLAYER_HANDLE_EXCEPTIONS', defaults.handle_exceptions, environ)
        if log_expected_errors is None:
            log_expected_errors = env_flag('RESTLAYER_LOG_EXPECTED_ERRORS', defaults.log_expected_errors, environ)

        return cls(
            service_name=final_service,
            handle_exceptions=handle_exceptions,
            log_expected_errors=log_expected_errors,
        )
