"""
Client configuration.

All timeouts are in milliseconds for both protocols.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from .errors import ConfigurationError

DEFAULT_TIMEOUT_MS = 60000
DEFAULT_MAX_MESSAGE_BYTES = 128 * 1024 * 1024


def get_env_int(name: str, default: int) -> int:
    """Get integer from environment variable."""
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


def get_env_bool(name: str, default: bool) -> bool:
    """Get boolean from environment variable."""
    value = os.environ.get(name, str(default)).lower()
    return value in ("true", "1", "yes", "on")


@dataclass
class ClientOptions:
    """
    Connection options shared by the HTTP and gRPC clients.

    Attributes:
        verbose: Log every request and response at INFO instead of DEBUG
        connection_timeout_ms: Time allowed to establish a connection
        network_timeout_ms: Default per-call deadline once connected
        ssl: Use TLS (https / secure gRPC channel)
        ssl_verify: Verify the server certificate (HTTP only may disable it)
        ssl_ca_file: PEM bundle used to verify the server
        headers: Extra HTTP headers / gRPC metadata sent with every call
        max_message_bytes: gRPC send/receive message size limit
        logger: Logger to use instead of the module logger
    """
    verbose: bool = False
    connection_timeout_ms: int = DEFAULT_TIMEOUT_MS
    network_timeout_ms: int = DEFAULT_TIMEOUT_MS
    ssl: bool = False
    ssl_verify: bool = True
    ssl_ca_file: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES
    logger: Optional[logging.Logger] = None

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the options are usable."""
        errors = []
        if self.connection_timeout_ms <= 0:
            errors.append("connection_timeout_ms must be > 0")
        if self.network_timeout_ms <= 0:
            errors.append("network_timeout_ms must be > 0")
        if self.max_message_bytes <= 0:
            errors.append("max_message_bytes must be > 0")
        if self.ssl_ca_file is not None and not os.path.isfile(self.ssl_ca_file):
            errors.append(f"ssl_ca_file does not exist: {self.ssl_ca_file}")
        if self.ssl_ca_file is not None and not self.ssl:
            errors.append("ssl_ca_file is set but ssl is disabled")
        return errors

    def check(self) -> None:
        """Raise ConfigurationError if validate() reports any problem."""
        errors = self.validate()
        if errors:
            raise ConfigurationError("Invalid client options: " + "; ".join(errors))

    def get_logger(self, default: logging.Logger) -> logging.Logger:
        return self.logger if self.logger is not None else default

    @classmethod
    def from_env(cls, prefix: str = "KSERVE_") -> "ClientOptions":
        """
        Build options from environment variables.

        Reads ``{prefix}VERBOSE``, ``{prefix}CONNECTION_TIMEOUT_MS``,
        ``{prefix}NETWORK_TIMEOUT_MS``, ``{prefix}SSL``, ``{prefix}SSL_VERIFY``,
        ``{prefix}SSL_CA_FILE`` and ``{prefix}MAX_MESSAGE_BYTES``; unset
        variables keep the documented defaults.
        """
        defaults = {f.name: f.default for f in fields(cls) if f.name != "headers"}
        return cls(
            verbose=get_env_bool(f"{prefix}VERBOSE", defaults["verbose"]),
            connection_timeout_ms=get_env_int(
                f"{prefix}CONNECTION_TIMEOUT_MS", defaults["connection_timeout_ms"]
            ),
            network_timeout_ms=get_env_int(
                f"{prefix}NETWORK_TIMEOUT_MS", defaults["network_timeout_ms"]
            ),
            ssl=get_env_bool(f"{prefix}SSL", defaults["ssl"]),
            ssl_verify=get_env_bool(f"{prefix}SSL_VERIFY", defaults["ssl_verify"]),
            ssl_ca_file=os.environ.get(f"{prefix}SSL_CA_FILE") or None,
            max_message_bytes=get_env_int(
                f"{prefix}MAX_MESSAGE_BYTES", defaults["max_message_bytes"]
            ),
        )


def split_url(url: str, default_port: int) -> Tuple[Optional[str], str, int]:
    """
    Split ``host:port`` or ``scheme://host:port`` into its parts.

    Returns:
        (scheme or None, host, port)

    Raises:
        ConfigurationError: If the URL is empty or malformed
    """
    if not url:
        raise ConfigurationError("Server URL must be non-empty")
    has_scheme = "://" in url
    parts = urlsplit(url if has_scheme else f"//{url}")
    if parts.path not in ("", "/") or parts.query or parts.fragment:
        raise ConfigurationError(f"Server URL must not have a path: {url!r}")
    try:
        port = parts.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid port in server URL {url!r}") from e
    if not parts.hostname:
        raise ConfigurationError(f"Missing host in server URL {url!r}")
    return (parts.scheme if has_scheme else None), parts.hostname, port or default_port
