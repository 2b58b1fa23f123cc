import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from vulntree.config import Settings, get_settings
from vulntree.core.concurrency import map_with_concurrency
from vulntree.core.model import DependencyNode, DependencyTree, Packument, VersionRecord
from vulntree.errors import PackageNotFoundError, RegistryFetchError
from vulntree.registry.base import Registry


@dataclass(frozen=True)
class _Edge:
    parent: DependencyNode
    declared_name: str
    spec: str
    optional: bool


def _platform_allows(allowed: Sequence[str], target: str) -> bool:
    if not allowed:
        return True
    blocked = [entry[1:] for entry in allowed if entry.startswith("!")]
    if target in blocked:
        return False
    listed = [entry for entry in allowed if not entry.startswith("!")]
    return not listed or target in listed


def matches_platform(record: VersionRecord, os: str, cpu: str, libc: str) -> bool:
    """False when the version's os/cpu/libc lists exclude the target platform."""
    return (
        _platform_allows(record.os, os)
        and _platform_allows(record.cpu, cpu)
        and _platform_allows(record.libc, libc)
    )


class DependencyGraphBuilder:
    """
    Resolves the full dependency graph of one package version, breadth-first.

    Each frontier level is fetched and resolved completely before the next one
    starts, so every node is recorded at its shortest distance from the root,
    with the first path that reached it. Nodes are keyed by name@version.
    """

    def __init__(self, registry: Registry, settings: Optional[Settings] = None) -> None:
        self.registry = registry
        self.settings = settings or get_settings()

    async def build_tree(
        self,
        root_name: str,
        root_version: str,
        max_depth: Optional[int] = None,
    ) -> DependencyTree:
        # A failure here is fatal: there is nothing to analyze without the root
        root_packument = await self.registry.fetch_packument(root_name)
        root_record = root_packument.versions.get(root_version)
        if root_record is None:
            raise PackageNotFoundError(
                f"Version '{root_version}' of '{root_name}' not found",
                details={"package": root_name, "version": root_version},
            )

        root = DependencyNode(root_name, root_version, level=0, path=(root_name,))
        tree = DependencyTree(root=root, nodes=[root])
        if root_record.deprecated:
            tree.deprecations[root.key] = root_record.deprecated

        visited: Set[str] = {root.key}
        failed_names: Set[str] = set()
        frontier: List[Tuple[DependencyNode, VersionRecord]] = [(root, root_record)]
        level = 0

        while frontier:
            if max_depth is not None and level >= max_depth:
                logging.debug(f"Depth ceiling {max_depth} reached with {len(frontier)} nodes unexpanded")
                break

            edges = self._collect_edges(frontier, tree)
            packuments = await self._fetch_level(edges, failed_names, tree)

            next_frontier: List[Tuple[DependencyNode, VersionRecord]] = []
            for edge, target in edges:
                packument = packuments.get(target[0])
                if packument is None:
                    continue

                placed = self._place(edge, target, packument, visited, tree)
                if placed is not None:
                    next_frontier.append(placed)

            logging.debug(f"Level {level + 1}: {len(next_frontier)} new nodes, {len(tree.nodes)} total")
            frontier = next_frontier
            level += 1

        logging.info(
            f"Resolved {root.key}: {len(tree.nodes)} packages, "
            f"{len(tree.failed_fetches)} failed fetches, {len(tree.unresolved)} unresolved edges"
        )
        return tree

    def _collect_edges(
        self,
        frontier: List[Tuple[DependencyNode, VersionRecord]],
        tree: DependencyTree,
    ) -> List[Tuple[_Edge, Tuple[str, str]]]:
        """Declared edges of the whole frontier, in order, mapped to (package, range)."""
        edges = []
        for parent, record in frontier:
            declared = [(name, spec, False) for name, spec in record.dependencies.items()]
            if self.settings.include_optional:
                declared += [
                    (name, spec, True)
                    for name, spec in record.optional_dependencies.items()
                    if name not in record.dependencies
                ]

            for name, spec, optional in declared:
                edge = _Edge(parent, name, spec, optional)
                target = self.registry.normalize_dependency(name, spec)
                if target is None:
                    self._unresolved(edge, tree, "spec does not point at the registry")
                    continue
                edges.append((edge, target))
        return edges

    async def _fetch_level(
        self,
        edges: List[Tuple[_Edge, Tuple[str, str]]],
        failed_names: Set[str],
        tree: DependencyTree,
    ) -> Dict[str, Optional[Packument]]:
        names: List[str] = []
        required: Set[str] = set()
        for edge, (name, _) in edges:
            if name in failed_names:
                # Failed earlier as an optional dependency, now needed by a required edge
                if not edge.optional and name not in tree.failed_fetches:
                    logging.warning(f"Skipping subtree of {name}: fetch already failed")
                    tree.failed_fetches.append(name)
                continue
            if name not in names:
                names.append(name)
            if not edge.optional:
                required.add(name)

        async def fetch(name: str, _: int) -> Optional[Packument]:
            try:
                return await self.registry.fetch_packument(name)
            except (RegistryFetchError, PackageNotFoundError) as e:
                failed_names.add(name)
                if name in required:
                    logging.warning(f"Skipping subtree of {name}: {e.message}")
                    tree.failed_fetches.append(name)
                else:
                    logging.debug(f"Skipping optional dependency {name}: {e.message}")
                return None

        results = await map_with_concurrency(names, fetch, self.settings.registry_concurrency)
        return dict(zip(names, results))

    def _place(
        self,
        edge: _Edge,
        target: Tuple[str, str],
        packument: Packument,
        visited: Set[str],
        tree: DependencyTree,
    ) -> Optional[Tuple[DependencyNode, VersionRecord]]:
        name, spec = target
        version = self.registry.resolve_range(packument, spec)
        if version is None:
            self._unresolved(edge, tree, "no version satisfies the range")
            return None

        record = packument.versions[version]
        if edge.optional and not matches_platform(
            record, self.settings.target_os, self.settings.target_cpu, self.settings.target_libc
        ):
            logging.debug(f"Skipping {name}@{version}: not built for the target platform")
            return None

        key = f"{name}@{version}"
        if key in visited:
            return None
        visited.add(key)

        node = DependencyNode(
            name,
            version,
            level=edge.parent.level + 1,
            path=edge.parent.path + (name,),
            optional=edge.optional,
        )
        tree.nodes.append(node)
        if record.deprecated:
            tree.deprecations[key] = record.deprecated
        return node, record

    @staticmethod
    def _unresolved(edge: _Edge, tree: DependencyTree, reason: str) -> None:
        tree.unresolved.append((edge.parent.key, edge.declared_name, edge.spec))
        log = logging.debug if edge.optional else logging.warning
        log(f"Unresolved dependency {edge.declared_name}@{edge.spec!r} of {edge.parent.key}: {reason}")


async def build_tree(
    registry: Registry,
    root_name: str,
    root_version: str,
    max_depth: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> DependencyTree:
    return await DependencyGraphBuilder(registry, settings).build_tree(root_name, root_version, max_depth)
