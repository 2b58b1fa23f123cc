from abc import ABC, abstractmethod
from typing import Optional, Tuple

from vulntree.core import semver
from vulntree.core.model import Packument


class Registry(ABC):
    """Base class for package registries the graph builder can walk."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Friendly registry name (e.g., npm registry)."""
        pass

    @property
    @abstractmethod
    def ecosystem(self) -> str:
        """Ecosystem identifier understood by the vulnerability database."""
        pass

    @abstractmethod
    async def fetch_packument(self, name: str) -> Packument:
        """
        Return metadata for every published version of ``name``.

        Raises PackageNotFoundError when the registry has no such package and
        RegistryFetchError on any other failure.
        """
        pass

    def normalize_dependency(self, name: str, spec: str) -> Optional[Tuple[str, str]]:
        """
        Map a declared dependency to the (package, range) that should be
        resolved, or None when the spec cannot be resolved from the registry.
        """
        return name, spec

    def resolve_range(self, packument: Packument, spec: str) -> Optional[str]:
        return semver.resolve(packument.versions.keys(), spec)

    async def aclose(self) -> None:
        pass

    async def __aenter__(self) -> "Registry":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
