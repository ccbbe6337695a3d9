"""Configuration management for nscache.

Settings are loaded from ``REDIS_CACHE_*`` environment variables (and an
optional ``.env`` file) with validation and type safety. The only variable
most deployments need is ``REDIS_CACHE_SERVER``, which selects the Redis
server as ``host:port``.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from nscache.core.exceptions import ConfigurationError

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 6379
DEFAULT_SERVER = f"{DEFAULT_HOST}:{DEFAULT_PORT}"


class CacheSettings(BaseSettings):
    """Cache configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis server
    server: str = Field(
        default=DEFAULT_SERVER, description="Redis server address as host:port"
    )
    db: int = Field(default=0, description="Redis database number", ge=0)
    password: str | None = Field(default=None, description="Redis password")

    # Connection behaviour
    reconnect_attempts: int = Field(
        default=3, description="Automatic reconnect attempts", ge=0, le=10
    )
    socket_timeout: float | None = Field(
        default=None, description="Socket timeout in seconds (None = blocking)", gt=0
    )
    socket_connect_timeout: float | None = Field(
        default=None, description="Connect timeout in seconds", gt=0
    )

    # Value encoding
    serializer: Literal["pickle", "msgpack"] = Field(
        default="pickle", description="Serializer for structured values"
    )
    envelope: bool = Field(
        default=True,
        description="Tag stored values with a format header (False = legacy sniffing)",
    )


def resolve_server_address(settings: CacheSettings | None = None) -> tuple[str, int]:
    """Resolve the Redis host and port.

    Args:
        settings: Cache settings. Read fresh from the environment when omitted.

    Returns:
        ``(host, port)`` tuple. Defaults to ``("127.0.0.1", 6379)`` when
        ``REDIS_CACHE_SERVER`` is unset or empty. IPv6 literals must be
        bracketed: ``[::1]:6379``.

    Raises:
        ConfigurationError: If the port is not an integer, or an IPv6
            literal is given without brackets.
    """
    if settings is None:
        settings = CacheSettings()

    server = settings.server.strip() or DEFAULT_SERVER
    invalid = ConfigurationError(
        f"Invalid Redis server address: {server!r}", details={"server": server}
    )

    if server.startswith("["):
        host, sep, rest = server[1:].partition("]")
        if not sep or not host or (rest and not rest.startswith(":")):
            raise invalid
        port = rest[1:]
    elif server.count(":") > 1:
        raise invalid
    else:
        host, _, port = server.partition(":")

    try:
        port_number = int(port) if port else DEFAULT_PORT
    except ValueError as e:
        raise invalid from e

    return host or DEFAULT_HOST, port_number
