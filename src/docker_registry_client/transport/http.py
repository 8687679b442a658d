"""
Registry HTTP transport for the OCI Distribution API.

Provides async HTTP access to registries with the Docker Registry v2 auth
flow (Bearer token exchange, Basic fallback) and retries for timeouts and
connection failures. Every HTTP status is returned to the caller; only
failures to obtain a response raise.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import time
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import TransportError
from ..settings import Settings
from .base import TransportResponse

logger = logging.getLogger(__name__)

__all__ = ["DockerAuth", "HttpTransport"]

# Hosts whose API endpoint differs from the name used in references
REGISTRY_ENDPOINTS = {
    "docker.io": "registry-1.docker.io",
    "index.docker.io": "registry-1.docker.io",
}

# Token lifetime assumed when a token response omits expires_in
DEFAULT_TOKEN_LIFETIME_S = 60

# Refresh tokens this long before they expire, at most half their lifetime
TOKEN_EXPIRY_MARGIN_S = 30

# Hosts always spoken to over plain HTTP, whatever the port
LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1"})


class DockerAuth:
    """Handle Docker Registry credentials from config files."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path.home() / ".docker" / "config.json"
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def get_credentials(self, registry: str) -> Optional[Tuple[str, str]]:
        """
        Get credentials for registry from Docker config.

        Returns: (username, password) or None if not found
        """
        config = self._load_config()
        if not config:
            return None

        auths = config.get("auths", {})

        candidates = [registry, f"https://{registry}", f"http://{registry}"]
        if registry in REGISTRY_ENDPOINTS:
            candidates.append("https://index.docker.io/v1/")

        auth_entry = next((auths[key] for key in candidates if key in auths), None)
        if not isinstance(auth_entry, dict):
            return None

        # Handle base64 encoded auth field
        if "auth" in auth_entry:
            try:
                decoded = base64.b64decode(auth_entry["auth"]).decode()
            except (binascii.Error, UnicodeDecodeError, ValueError):
                logger.warning(f"Ignoring malformed auth entry for {registry} in {self.config_path}")
            else:
                if ":" in decoded:
                    username, password = decoded.split(":", 1)
                    return username, password

        # Handle username/password fields
        if "username" in auth_entry and "password" in auth_entry:
            return auth_entry["username"], auth_entry["password"]

        return None

    def _load_config(self) -> Optional[dict]:
        """Load Docker config with caching and mtime checking."""
        if not self.config_path.exists():
            return None

        try:
            current_mtime = self.config_path.stat().st_mtime

            # Use cached version if file hasn't changed
            if (self._config_cache is not None and
                    self._config_mtime is not None and
                    current_mtime == self._config_mtime):
                return self._config_cache

            with open(self.config_path, "r") as f:
                config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cannot read docker config {self.config_path}: {e}")
            return None

        self._config_cache = config
        self._config_mtime = current_mtime
        return config


class HttpTransport:
    """
    Async HTTP transport for OCI Distribution API requests.

    Implements the Docker Registry v2 auth flow: a 401 carrying a
    ``WWW-Authenticate: Bearer`` challenge is answered by exchanging
    credentials (or nothing, for anonymous pulls) for a token at the realm,
    then retrying the request once. Tokens are cached per realm/service/scope.
    """

    def __init__(self, settings: Optional[Settings] = None, *, auth: Optional[DockerAuth] = None,
                 client: Optional[httpx.AsyncClient] = None):
        """
        Initialize registry HTTP transport.

        Args:
            settings: Timeouts, retries, insecure hosts and user agent
            auth: Docker auth handler (defaults to settings.docker_config or ~/.docker/config.json)
            client: Preconfigured httpx client (owned by the caller)
        """
        self._settings = settings or Settings()
        self.auth = auth or DockerAuth(
            Path(self._settings.docker_config) if self._settings.docker_config else None
        )

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._settings.http_timeout_s, connect=5.0),
            follow_redirects=True,
            headers={"User-Agent": self._settings.user_agent},
        )

        # Token cache: {realm|service|scope: (token, reuse_until_timestamp)}
        self._token_cache: Dict[str, Tuple[str, float]] = {}

    def base_url(self, registry: str) -> str:
        """API base URL for a registry host."""
        host = REGISTRY_ENDPOINTS.get(registry, registry)
        insecure = (
            registry in self._settings.insecure_registries
            or registry.split(":", 1)[0] in LOCAL_HOSTS
        )
        return f"{'http' if insecure else 'https'}://{host}"

    async def request(
        self,
        method: str,
        registry: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TransportResponse:
        """
        Make HTTP request with transparent token auth flow.

        Handles 401 responses by:
        1. Parsing WWW-Authenticate header for Bearer realm/service/scope
        2. Looking up credentials in Docker config (anonymous if none)
        3. Exchanging them for a Bearer token
        4. Retrying original request with Authorization header
        """
        url = f"{self.base_url(registry)}{path}"
        request_headers = dict(headers or {})

        try:
            response = await self._send(method, url, request_headers)

            if response.status_code == 401:
                authorization = await self._authorize(
                    registry, response.headers.get("WWW-Authenticate", "")
                )
                if authorization:
                    request_headers["Authorization"] = authorization
                    response = await self._send(method, url, request_headers)
        except httpx.HTTPError as e:
            raise TransportError(f"Network error for {method} {url}: {e}") from e

        logger.debug(f"{method} {url} -> {response.status_code}")
        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    async def _send(self, method: str, url: str, headers: Dict[str, str]) -> httpx.Response:
        """Send one request, retrying timeouts and connection errors."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.http_retry + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            reraise=True,
        ):
            with attempt:
                response = await self.client.request(method, url, headers=headers)
        return response

    async def _authorize(self, registry: str, www_authenticate: str) -> Optional[str]:
        """
        Answer an auth challenge with an Authorization header value.

        Returns None when the challenge cannot be answered; the caller then
        sees the original 401.
        """
        scheme, _, _ = www_authenticate.partition(" ")
        scheme = scheme.lower()
        credentials = self.auth.get_credentials(registry)

        if scheme == "basic":
            if not credentials:
                return None
            encoded = base64.b64encode(":".join(credentials).encode()).decode()
            return f"Basic {encoded}"

        if scheme != "bearer":
            return None

        # Format: Bearer realm="...",service="...",scope="..."
        bearer_params = {
            match.group(1): match.group(2)
            for match in re.finditer(r'(\w+)="([^"]*)"', www_authenticate)
        }
        realm = bearer_params.get("realm")
        if not realm:
            return None
        service = bearer_params.get("service")
        scope = bearer_params.get("scope")

        cache_key = f"{realm}|{service or ''}|{scope or ''}"
        cached = self._token_cache.get(cache_key)
        if cached and time.time() < cached[1]:
            return f"Bearer {cached[0]}"

        params = {key: value for key, value in (("service", service), ("scope", scope)) if value}
        token_response = await self.client.get(realm, params=params, auth=credentials)

        if token_response.status_code != 200:
            logger.warning(f"Token request to {realm} failed with status {token_response.status_code}")
            return None

        try:
            token_data = token_response.json()
        except ValueError:
            logger.warning(f"Token response from {realm} is not valid JSON")
            return None

        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            logger.warning(f"Token response from {realm} carries no token")
            return None

        expires_in = float(token_data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_S)
        margin = min(TOKEN_EXPIRY_MARGIN_S, expires_in / 2)
        self._token_cache[cache_key] = (token, time.time() + expires_in - margin)
        return f"Bearer {token}"

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
