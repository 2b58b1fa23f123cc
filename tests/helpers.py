import json
from collections import Counter
from typing import Dict, Optional, Union

import httpx

from vulntree.config import Settings
from vulntree.core.model import Packument
from vulntree.errors import PackageNotFoundError
from vulntree.registry.npm import NpmRegistry


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def make_packument(name: str, versions: Dict[str, dict], latest: Optional[str] = None, **tags) -> Packument:
    dist_tags = dict(tags)
    if latest is None and versions:
        latest = list(versions)[-1]
    if latest is not None:
        dist_tags["latest"] = latest
    return Packument.from_json(name, {"name": name, "dist-tags": dist_tags, "versions": versions})


class FakeRegistry(NpmRegistry):
    """npm resolution rules over an in-memory set of packuments."""

    def __init__(self, packuments: Dict[str, Union[Packument, Exception]], settings: Optional[Settings] = None):
        self.settings = settings or make_settings()
        self.packuments = packuments
        self.calls = Counter()

    async def fetch_packument(self, name: str) -> Packument:
        self.calls[name] += 1
        found = self.packuments.get(name)
        if found is None:
            raise PackageNotFoundError(f"Package '{name}' not found", details={"package": name})
        if isinstance(found, Exception):
            raise found
        return found

    async def aclose(self) -> None:
        pass


class FakeOsv:
    """Answers querybatch from a coordinate map and /vulns/{id} from a record map."""

    def __init__(self, hits=None, records=None, fail_batches=0, fail_ids=()):
        self.hits = hits or {}
        self.records = records or {}
        self.fail_batches = fail_batches
        self.fail_ids = set(fail_ids)
        self.batch_sizes = []
        self.detail_calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/querybatch"):
            queries = json.loads(request.content)["queries"]
            self.batch_sizes.append(len(queries))
            if self.fail_batches:
                self.fail_batches -= 1
                return httpx.Response(503, text="unavailable")
            results = []
            for q in queries:
                assert q["package"]["ecosystem"] == "npm"
                ids = self.hits.get((q["package"]["name"], q["version"]), [])
                results.append({"vulns": [{"id": i, "modified": "2024-01-01T00:00:00Z"} for i in ids]} if ids else {})
            return httpx.Response(200, json={"results": results})

        vuln_id = request.url.path.rsplit("/", 1)[-1]
        self.detail_calls.append(vuln_id)
        if vuln_id in self.fail_ids:
            return httpx.Response(500, text="oops")
        return httpx.Response(200, json=self.records[vuln_id])
