"""
Settings and configuration for the registry client.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at construction time.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

__all__ = ["Settings", "create_settings_from_env", "CACHE_BACKENDS"]

CACHE_BACKENDS = ("memory", "redis")

DEFAULT_REDIS_PREFIX = "docker-registry-client:manifest"
DEFAULT_USER_AGENT = "docker-registry-client/0.1.0"


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for the registry client.

    Cache Settings:
        cache_backend: "memory" (per process) or "redis" (shared across instances)
        tag_ttl_s: Lifetime of tag-keyed entries; digest-keyed entries never expire
        memory_max_entries: Bound for the in-process cache (0 = unbounded)
        redis_url: Redis connection URL (required for the redis backend)
        redis_prefix: Key prefix for entries stored in redis

    HTTP Settings:
        http_timeout_s: HTTP request timeout in seconds
        http_retry: Number of retries for timeouts/connection errors (0=no retry)
        insecure_registries: Registry hosts spoken to over plain HTTP
        docker_config: Path to a docker config.json holding registry credentials
        user_agent: User-Agent header sent to registries

    Resolution Settings:
        default_platform: Platform for manifest list selection ("linux/arm64");
            None selects the host platform
    """
    cache_backend: str = "memory"
    tag_ttl_s: float = 300.0
    memory_max_entries: int = 0
    redis_url: Optional[str] = None
    redis_prefix: str = DEFAULT_REDIS_PREFIX

    http_timeout_s: float = 30.0
    http_retry: int = 0
    insecure_registries: tuple[str, ...] = ()
    docker_config: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT

    default_platform: Optional[str] = None

    def __post_init__(self):
        """Validate settings on construction."""
        if self.cache_backend not in CACHE_BACKENDS:
            raise ValueError(
                f"Unknown cache_backend: {self.cache_backend}. "
                f"Supported values: {', '.join(CACHE_BACKENDS)}"
            )

        if self.cache_backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required for the redis cache backend")

        if self.redis_url and not re.match(r"^(?:redis|rediss|unix)://", self.redis_url):
            raise ValueError(f"Invalid redis_url format: {self.redis_url}")

        if not self.redis_prefix:
            raise ValueError("redis_prefix cannot be empty")

        # Tag entries must always expire
        if self.tag_ttl_s <= 0:
            raise ValueError(f"tag_ttl_s must be positive, got {self.tag_ttl_s}")

        if self.memory_max_entries < 0:
            raise ValueError(f"memory_max_entries must be non-negative, got {self.memory_max_entries}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        host_pattern = r"^[a-zA-Z0-9.-]+(?::[0-9]+)?$"
        for host in self.insecure_registries:
            if not re.match(host_pattern, host):
                raise ValueError(f"Invalid insecure registry host: {host}")

        if self.default_platform is not None:
            parts = self.default_platform.split("/")
            if len(parts) not in (2, 3) or not all(parts):
                raise ValueError(
                    f"Invalid default_platform: {self.default_platform}. Expected os/arch[/variant]"
                )


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        Cache:
        - DRC_CACHE_BACKEND (default: memory)
        - DRC_TAG_TTL (default: 300)
        - DRC_MEMORY_MAX_ENTRIES (default: 0, unbounded)
        - DRC_REDIS_URL (required for redis)
        - DRC_REDIS_PREFIX (default: docker-registry-client:manifest)

        HTTP:
        - DRC_HTTP_TIMEOUT (default: 30.0)
        - DRC_HTTP_RETRY (default: 0)
        - DRC_INSECURE_REGISTRIES (comma separated hosts)
        - DRC_DOCKER_CONFIG (default: ~/.docker/config.json)

        Resolution:
        - DRC_DEFAULT_PLATFORM (default: host platform)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    insecure = tuple(
        host.strip()
        for host in os.getenv("DRC_INSECURE_REGISTRIES", "").split(",")
        if host.strip()
    )

    return Settings(
        cache_backend=os.getenv("DRC_CACHE_BACKEND", "memory").lower(),
        tag_ttl_s=get_float("DRC_TAG_TTL", 300.0),
        memory_max_entries=get_int("DRC_MEMORY_MAX_ENTRIES", 0),
        redis_url=os.getenv("DRC_REDIS_URL") or None,
        redis_prefix=os.getenv("DRC_REDIS_PREFIX", DEFAULT_REDIS_PREFIX),
        http_timeout_s=get_float("DRC_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("DRC_HTTP_RETRY", 0),
        insecure_registries=insecure,
        docker_config=os.getenv("DRC_DOCKER_CONFIG") or None,
        default_platform=os.getenv("DRC_DEFAULT_PLATFORM") or None,
    )
