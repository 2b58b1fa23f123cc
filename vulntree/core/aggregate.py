from typing import List, Mapping, Sequence, Tuple

from vulntree.core.model import (
    AnalysisReport,
    DependencyNode,
    DeprecatedPackageInfo,
    PackageVulnerabilityInfo,
    SeverityCounts,
    VulnerabilityRecord,
)


def aggregate(
    package: str,
    version: str,
    nodes: Sequence[DependencyNode],
    findings: Mapping[Tuple[str, str], List[VulnerabilityRecord]],
    deprecations: Mapping[str, str],
    failed_queries: int = 0,
) -> AnalysisReport:
    """
    Merge traversal nodes with their findings and deprecation notices.

    Both lists keep the order of ``nodes`` (breadth-first discovery order);
    tree-wide counts are the sum of per-package counts.
    """
    vulnerable: List[PackageVulnerabilityInfo] = []
    deprecated: List[DeprecatedPackageInfo] = []
    total = SeverityCounts()

    for node in nodes:
        records = findings.get((node.name, node.version))
        if records:
            counts = SeverityCounts.from_findings(records)
            total = total + counts
            vulnerable.append(PackageVulnerabilityInfo(
                name=node.name,
                version=node.version,
                depth=node.depth,
                path=node.path,
                vulnerabilities=tuple(records),
                counts=counts,
            ))

        message = deprecations.get(node.key)
        if message:
            deprecated.append(DeprecatedPackageInfo(
                name=node.name,
                version=node.version,
                depth=node.depth,
                path=node.path,
                message=message,
            ))

    return AnalysisReport(
        package=package,
        version=version,
        vulnerable_packages=tuple(vulnerable),
        deprecated_packages=tuple(deprecated),
        total_packages=len(nodes),
        failed_queries=failed_queries,
        total_counts=total,
    )
