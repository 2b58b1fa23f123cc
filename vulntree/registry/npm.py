import logging
from typing import Optional, Tuple
from urllib.parse import quote

import httpx

from vulntree.config import Settings, get_settings
from vulntree.core import semver
from vulntree.core.cache import SWRCache
from vulntree.core.model import Packument
from vulntree.errors import PackageNotFoundError, RegistryFetchError
from vulntree.registry.base import Registry

# Abbreviated metadata: versions, dependencies, deprecation and platform fields only
ACCEPT_HEADER = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8, */*"

# Specs that point outside the registry
UNRESOLVABLE_PREFIXES = (
    "http://",
    "https://",
    "git://",
    "git+",
    "github:",
    "gitlab:",
    "bitbucket:",
    "file:",
    "link:",
    "workspace:",
    "portal:",
)

ANY_RANGES = ("", "*", "x", "X")


def encode_package_name(name: str) -> str:
    """Registry expects scoped names encoded like @scope%2Fname."""
    if name.startswith("@"):
        return "@" + quote(name[1:], safe="")
    return quote(name, safe="")


class NpmRegistry(Registry):
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        cache: Optional[SWRCache] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.settings.http_timeout,
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )
        self.cache = cache or SWRCache(
            "packument",
            ttl=self.settings.packument_ttl_seconds,
            stale_ttl=self.settings.packument_stale_seconds,
        )

    @property
    def name(self) -> str:
        return "npm registry"

    @property
    def ecosystem(self) -> str:
        return "npm"

    def packument_url(self, name: str) -> str:
        return f"{self.settings.registry_url}/{encode_package_name(name)}"

    async def fetch_packument(self, name: str) -> Packument:
        return await self.cache.get_or_fetch(name, lambda: self._fetch(name))

    async def _fetch(self, name: str) -> Packument:
        url = self.packument_url(name)
        logging.debug(f"GET {url}")

        try:
            response = await self._client.get(url, headers={"Accept": ACCEPT_HEADER})
        except httpx.HTTPError as e:
            raise RegistryFetchError(name, f"{type(e).__name__}: {e}") from e

        if response.status_code == 404:
            raise PackageNotFoundError(f"Package '{name}' not found", details={"package": name})
        if response.status_code != 200:
            raise RegistryFetchError(name, f"HTTP {response.status_code}", status=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryFetchError(name, "malformed JSON body") from e

        if not isinstance(data, dict) or not isinstance(data.get("versions"), dict):
            raise RegistryFetchError(name, "unexpected packument shape")

        packument = Packument.from_json(name, data)
        logging.debug(f"Fetched {name}: {len(packument.versions)} versions")
        return packument

    def normalize_dependency(self, name: str, spec: str) -> Optional[Tuple[str, str]]:
        spec = (spec or "").strip()

        # "npm:real-name@^1.0.0" installs real-name under an alias
        if spec.startswith("npm:"):
            target = spec[4:]
            at = target.rfind("@")
            if at > 0:
                return target[:at], target[at + 1:]
            return target, ""

        if spec.startswith(UNRESOLVABLE_PREFIXES) or "/" in spec:
            return None

        return name, spec

    def resolve_range(self, packument: Packument, spec: str) -> Optional[str]:
        spec = (spec or "").strip()
        versions = packument.versions

        if spec in versions:
            return spec

        if spec in ANY_RANGES:
            latest = packument.latest
            if latest in versions:
                return latest

        tagged = packument.dist_tags.get(spec)
        if tagged is not None:
            return tagged if tagged in versions else None

        return semver.resolve(versions.keys(), spec)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
