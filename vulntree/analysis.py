import logging
from typing import Optional

from vulntree.config import Settings, get_settings
from vulntree.core.aggregate import aggregate
from vulntree.core.cache import SWRCache
from vulntree.core.graph import DependencyGraphBuilder
from vulntree.core.model import AnalysisReport
from vulntree.core.scanner import OsvClient
from vulntree.errors import PackageNotFoundError, UpstreamError, VulntreeError
from vulntree.registry.base import Registry
from vulntree.registry.npm import NpmRegistry
from vulntree.validation import validate_package_name, validate_version

CACHE_KEY_VERSION = "v2"


class DependencyAnalyzer:
    """Runs tree resolution, vulnerability lookup and aggregation for one package version."""

    def __init__(
        self,
        registry: Optional[Registry] = None,
        scanner: Optional[OsvClient] = None,
        settings: Optional[Settings] = None,
        cache: Optional[SWRCache] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_registry = registry is None
        self._owns_scanner = scanner is None
        self.registry = registry or NpmRegistry(settings=self.settings)
        self.scanner = scanner or OsvClient(settings=self.settings, ecosystem=self.registry.ecosystem)
        self.cache = cache or SWRCache(
            "dependency-analysis",
            ttl=self.settings.analysis_ttl_seconds,
            stale_ttl=self.settings.analysis_ttl_seconds,
        )

    async def analyze(
        self,
        name: str,
        version: Optional[str] = None,
        max_depth: Optional[int] = None,
    ) -> AnalysisReport:
        validate_package_name(name)
        if version is not None:
            version = validate_version(version)
        if max_depth is None:
            max_depth = self.settings.max_depth

        try:
            version = await self._resolve_root_version(name, version)
            key = f"{CACHE_KEY_VERSION}:{name}@{version}"
            if max_depth is not None:
                key += f":depth={max_depth}"
            return await self.cache.get_or_fetch(key, lambda: self._run(name, version, max_depth))
        except VulntreeError:
            raise
        except Exception as e:
            logging.exception(f"Unexpected failure analyzing {name}@{version}")
            raise UpstreamError("Failed to analyze vulnerabilities") from e

    async def _resolve_root_version(self, name: str, version: Optional[str]) -> str:
        packument = await self.registry.fetch_packument(name)

        if version is None:
            latest = packument.latest
            if not latest or latest not in packument.versions:
                raise PackageNotFoundError("No latest version found", details={"package": name})
            return latest

        if version in packument.versions:
            return version

        resolved = self.registry.resolve_range(packument, version)
        if resolved is None:
            raise PackageNotFoundError(
                f"Version '{version}' of '{name}' not found",
                details={"package": name, "version": version},
            )
        return resolved

    async def _run(self, name: str, version: str, max_depth: Optional[int]) -> AnalysisReport:
        logging.info(f"Analyzing {name}@{version}")

        builder = DependencyGraphBuilder(self.registry, self.settings)
        tree = await builder.build_tree(name, version, max_depth)

        scan = await self.scanner.scan([(node.name, node.version) for node in tree.nodes])

        failed_queries = len(tree.failed_fetches) + len(scan.failed)
        if failed_queries:
            logging.warning(f"{name}@{version}: {failed_queries} packages could not be checked")

        report = aggregate(name, version, tree.nodes, scan.findings, tree.deprecations, failed_queries)
        logging.info(
            f"{name}@{version}: {report.total_packages} packages, "
            f"{len(report.vulnerable_packages)} vulnerable, {len(report.deprecated_packages)} deprecated"
        )
        return report

    async def aclose(self) -> None:
        await self.cache.drain()
        if self._owns_registry:
            await self.registry.aclose()
        if self._owns_scanner:
            await self.scanner.aclose()

    async def __aenter__(self) -> "DependencyAnalyzer":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


async def analyze_package(
    name: str,
    version: Optional[str] = None,
    *,
    registry: Optional[Registry] = None,
    scanner: Optional[OsvClient] = None,
    settings: Optional[Settings] = None,
    max_depth: Optional[int] = None,
) -> AnalysisReport:
    """One-shot analysis; clients created here are closed before returning."""
    async with DependencyAnalyzer(registry=registry, scanner=scanner, settings=settings) as analyzer:
        return await analyzer.analyze(name, version, max_depth)
