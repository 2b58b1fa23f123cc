from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


# Priority order used for sorting findings, highest first
SEVERITY_ORDER = {"critical": 0, "high": 1, "moderate": 2, "low": 3, "unknown": 4}

ROOT = "root"
DIRECT = "direct"
TRANSITIVE = "transitive"


def depth_label(level: int) -> str:
    if level <= 0:
        return ROOT
    if level == 1:
        return DIRECT
    return TRANSITIVE


@dataclass(frozen=True)
class VersionRecord:
    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)
    optional_dependencies: Dict[str, str] = field(default_factory=dict)
    deprecated: Optional[str] = None

    # Platform constraints, used only when following optional dependencies
    os: Tuple[str, ...] = ()
    cpu: Tuple[str, ...] = ()
    libc: Tuple[str, ...] = ()

    @classmethod
    def from_manifest(cls, version: str, data: Dict[str, Any]) -> "VersionRecord":
        deprecated = data.get("deprecated")
        # npm stores "un-deprecation" as an empty string or false
        if not isinstance(deprecated, str) or not deprecated:
            deprecated = None

        return cls(
            version=version,
            dependencies=_str_mapping(data.get("dependencies")),
            optional_dependencies=_str_mapping(data.get("optionalDependencies")),
            deprecated=deprecated,
            os=_str_tuple(data.get("os")),
            cpu=_str_tuple(data.get("cpu")),
            libc=_str_tuple(data.get("libc")),
        )


@dataclass(frozen=True)
class Packument:
    name: str
    dist_tags: Dict[str, str] = field(default_factory=dict)
    versions: Dict[str, VersionRecord] = field(default_factory=dict)

    @classmethod
    def from_json(cls, name: str, data: Dict[str, Any]) -> "Packument":
        versions = {}
        for ver, manifest in (data.get("versions") or {}).items():
            if isinstance(manifest, dict):
                versions[ver] = VersionRecord.from_manifest(ver, manifest)

        return cls(
            name=data.get("name") or name,
            dist_tags=_str_mapping(data.get("dist-tags")),
            versions=versions,
        )

    @property
    def latest(self) -> Optional[str]:
        return self.dist_tags.get("latest")


@dataclass(frozen=True)
class DependencyNode:
    name: str
    version: str
    level: int
    path: Tuple[str, ...]
    optional: bool = False

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def depth(self) -> str:
        return depth_label(self.level)


@dataclass
class DependencyTree:
    """Deduplicated nodes of one traversal, in breadth-first discovery order."""

    root: DependencyNode
    nodes: List[DependencyNode] = field(default_factory=list)
    deprecations: Dict[str, str] = field(default_factory=dict)
    failed_fetches: List[str] = field(default_factory=list)
    unresolved: List[Tuple[str, str, str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass(frozen=True)
class VulnerabilityRef:
    id: str
    modified: str = ""


@dataclass(frozen=True)
class VulnerabilityRecord:
    id: str
    summary: str
    severity: str
    aliases: frozenset = frozenset()
    url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "summary": self.summary,
            "severity": self.severity,
            "aliases": sorted(self.aliases),
            "url": self.url,
        }


@dataclass
class ScanResult:
    findings: Dict[Tuple[str, str], List[VulnerabilityRecord]] = field(default_factory=dict)
    failed: List[Tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class SeverityCounts:
    critical: int = 0
    high: int = 0
    moderate: int = 0
    low: int = 0
    unknown: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.high + self.moderate + self.low + self.unknown

    @classmethod
    def from_findings(cls, findings: List[VulnerabilityRecord]) -> "SeverityCounts":
        counts = {level: 0 for level in SEVERITY_ORDER}
        for finding in findings:
            counts[finding.severity] = counts.get(finding.severity, 0) + 1
        return cls(**counts)

    def __add__(self, other: "SeverityCounts") -> "SeverityCounts":
        return SeverityCounts(
            critical=self.critical + other.critical,
            high=self.high + other.high,
            moderate=self.moderate + other.moderate,
            low=self.low + other.low,
            unknown=self.unknown + other.unknown,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "critical": self.critical,
            "high": self.high,
            "moderate": self.moderate,
            "low": self.low,
            "unknown": self.unknown,
        }


@dataclass(frozen=True)
class PackageVulnerabilityInfo:
    name: str
    version: str
    depth: str
    path: Tuple[str, ...]
    vulnerabilities: Tuple[VulnerabilityRecord, ...]
    counts: SeverityCounts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "depth": self.depth,
            "path": list(self.path),
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "counts": self.counts.to_dict(),
        }


@dataclass(frozen=True)
class DeprecatedPackageInfo:
    name: str
    version: str
    depth: str
    path: Tuple[str, ...]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "depth": self.depth,
            "path": list(self.path),
            "message": self.message,
        }


@dataclass(frozen=True)
class AnalysisReport:
    package: str
    version: str
    vulnerable_packages: Tuple[PackageVulnerabilityInfo, ...] = ()
    deprecated_packages: Tuple[DeprecatedPackageInfo, ...] = ()
    total_packages: int = 0
    failed_queries: int = 0
    total_counts: SeverityCounts = SeverityCounts()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package": self.package,
            "version": self.version,
            "vulnerablePackages": [p.to_dict() for p in self.vulnerable_packages],
            "deprecatedPackages": [p.to_dict() for p in self.deprecated_packages],
            "totalPackages": self.total_packages,
            "failedQueries": self.failed_queries,
            "totalCounts": self.total_counts.to_dict(),
        }


def _str_mapping(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if isinstance(v, str)}


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value)
