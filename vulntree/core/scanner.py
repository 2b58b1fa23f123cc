import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from vulntree.config import Settings, get_settings
from vulntree.core import cvss
from vulntree.core.concurrency import map_with_concurrency
from vulntree.core.model import SEVERITY_ORDER, ScanResult, VulnerabilityRecord, VulnerabilityRef
from vulntree.errors import VulnerabilityServiceError

Coordinate = Tuple[str, str]

# Trailing numeric score, either bare ("9.8") or after a vector ("CVSS:3.1/.../9.8")
_TRAILING_SCORE_RE = re.compile(r"(?:^|[/:])(\d+(?:\.\d+)?)$")

_LABELS = {
    "critical": "critical",
    "high": "high",
    "moderate": "moderate",
    "medium": "moderate",
    "low": "low",
}


def score_to_severity(score: float) -> str:
    if score >= 9.0:
        return "critical"
    if score >= 7.0:
        return "high"
    if score >= 4.0:
        return "moderate"
    if score > 0:
        return "low"
    return "unknown"


def parse_score(raw: str) -> Optional[float]:
    raw = (raw or "").strip()
    match = _TRAILING_SCORE_RE.search(raw)
    if match:
        return float(match.group(1))
    return cvss.base_score(raw)


def severity_level(vuln: Dict[str, Any]) -> str:
    """Advisory label first, then the first CVSS entry's score, else unknown."""
    db_specific = vuln.get("database_specific") or {}
    label = db_specific.get("severity") if isinstance(db_specific, dict) else None
    if isinstance(label, str) and label.lower() in _LABELS:
        return _LABELS[label.lower()]

    entries = vuln.get("severity")
    if isinstance(entries, list) and entries and isinstance(entries[0], dict):
        score = parse_score(str(entries[0].get("score", "")))
        if score is not None:
            return score_to_severity(score)

    return "unknown"


def vulnerability_url(vuln_id: str, aliases: Sequence[str]) -> str:
    if vuln_id.startswith("GHSA-"):
        return f"https://github.com/advisories/{vuln_id}"
    for alias in aliases:
        if alias.startswith("CVE-"):
            return f"https://nvd.nist.gov/vuln/detail/{alias}"
    return f"https://osv.dev/vulnerability/{vuln_id}"


def to_record(vuln: Dict[str, Any]) -> VulnerabilityRecord:
    vuln_id = vuln["id"]
    aliases = [a for a in vuln.get("aliases") or [] if isinstance(a, str)]
    return VulnerabilityRecord(
        id=vuln_id,
        summary=vuln.get("summary") or "No description available",
        severity=severity_level(vuln),
        aliases=frozenset(aliases),
        url=vulnerability_url(vuln_id, aliases),
    )


class OsvClient:
    """
    Two-pass OSV client: ``querybatch`` finds which coordinates have
    advisories (ids only), then full records are fetched once per distinct id.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        ecosystem: str = "npm",
    ) -> None:
        self.settings = settings or get_settings()
        self.ecosystem = ecosystem
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.settings.http_timeout,
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )

    @property
    def batch_url(self) -> str:
        return f"{self.settings.osv_api_url}/querybatch"

    def detail_url(self, vuln_id: str) -> str:
        return f"{self.settings.osv_api_url}/vulns/{vuln_id}"

    async def query_batch(
        self, coordinates: Sequence[Coordinate]
    ) -> Tuple[Dict[Coordinate, List[VulnerabilityRef]], List[Coordinate]]:
        """
        Returns the advisory refs for every coordinate that could be queried,
        plus the coordinates whose batch failed.
        """
        size = self.settings.osv_batch_size
        chunks = [list(coordinates[i:i + size]) for i in range(0, len(coordinates), size)]
        total = len(chunks)
        logging.info(f"Querying {len(coordinates)} packages in {total} batches...")

        async def run(chunk: List[Coordinate], index: int) -> Optional[List[List[VulnerabilityRef]]]:
            try:
                result = await self._post_batch(chunk)
            except VulnerabilityServiceError as e:
                logging.warning(f"Batch {index + 1} of {total} failed ({len(chunk)} packages): {e.message}")
                return None
            logging.debug(f"Batch {index + 1} of {total} done")
            return result

        results = await map_with_concurrency(chunks, run, self.settings.osv_batch_concurrency)

        refs: Dict[Coordinate, List[VulnerabilityRef]] = {}
        failed: List[Coordinate] = []
        for chunk, result in zip(chunks, results):
            if result is None:
                failed.extend(chunk)
                continue
            for coordinate, found in zip(chunk, result):
                refs[coordinate] = found

        return refs, failed

    async def _post_batch(self, chunk: List[Coordinate]) -> List[List[VulnerabilityRef]]:
        queries = [
            {"package": {"name": name, "ecosystem": self.ecosystem}, "version": version}
            for name, version in chunk
        ]
        data = await self._request("POST", self.batch_url, json={"queries": queries})

        results = data.get("results")
        if not isinstance(results, list) or len(results) != len(chunk):
            raise VulnerabilityServiceError("batch response does not match the query count")

        parsed = []
        for (name, version), result in zip(chunk, results):
            result = result or {}
            if not isinstance(result, dict):
                raise VulnerabilityServiceError(f"malformed batch entry for {name}@{version}")
            if result.get("next_page_token"):
                logging.warning(
                    f"OSV returned a pagination token for {name}@{version}; some advisories may be missing"
                )
            vulns = result.get("vulns") or []
            if not isinstance(vulns, list) or not all(isinstance(v, dict) and v.get("id") for v in vulns):
                raise VulnerabilityServiceError(f"malformed advisory list for {name}@{version}")
            parsed.append([VulnerabilityRef(id=v["id"], modified=v.get("modified", "")) for v in vulns])
        return parsed

    async def fetch_details(self, vuln_ids: Sequence[str]) -> Dict[str, Optional[VulnerabilityRecord]]:
        """Full records by id; ids whose lookup failed map to None."""

        async def hydrate(vuln_id: str, _: int) -> Optional[VulnerabilityRecord]:
            try:
                data = await self._request("GET", self.detail_url(vuln_id))
                return to_record({**data, "id": data.get("id") or vuln_id})
            except VulnerabilityServiceError as e:
                logging.warning(f"Failed to hydrate {vuln_id}: {e.message}")
                return None

        records = await map_with_concurrency(list(vuln_ids), hydrate, self.settings.osv_detail_concurrency)
        return dict(zip(vuln_ids, records))

    async def scan(self, coordinates: Sequence[Coordinate]) -> ScanResult:
        result = ScanResult()
        if not coordinates:
            return result

        refs, failed = await self.query_batch(coordinates)
        result.failed.extend(failed)

        vuln_ids = list(dict.fromkeys(ref.id for found in refs.values() for ref in found))

        details = await self.fetch_details(vuln_ids) if vuln_ids else {}

        for coordinate in coordinates:
            found = refs.get(coordinate)
            if not found:
                continue

            ids = list(dict.fromkeys(ref.id for ref in found))
            records = [details.get(vid) for vid in ids]
            if any(r is None for r in records):
                result.failed.append(coordinate)
                continue

            # Stable sort keeps OSV order within a severity level
            result.findings[coordinate] = sorted(records, key=lambda r: SEVERITY_ORDER[r.severity])

        logging.info(
            f"Scan done: {len(result.findings)} vulnerable packages, "
            f"{len(vuln_ids)} advisories, {len(result.failed)} failed"
        )
        return result

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise VulnerabilityServiceError(f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            logging.error(f"OSV API Error {response.status_code}: {response.text[:200]}")
            raise VulnerabilityServiceError(f"HTTP {response.status_code}", status=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise VulnerabilityServiceError("malformed JSON body") from e

        if not isinstance(data, dict):
            raise VulnerabilityServiceError("unexpected response shape")
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "OsvClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
