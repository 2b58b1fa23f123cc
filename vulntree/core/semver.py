"""
npm-flavoured semantic versioning.

Supports the range grammar found in registry manifests:
  - comparators: 1.2.3, =1.2.3, >1.2.3, >=1.2, <2, <=1.2.x
  - caret / tilde: ^1.2.3, ^0.2, ~1.2.3, ~1
  - X-ranges: *, x, 1, 1.x, 1.2.*
  - hyphen ranges: 1.2.3 - 2.3.4
  - comparator sets joined by spaces, unions joined by ||

A prerelease version only satisfies a comparator set that names the same
major.minor.patch with a prerelease of its own, as npm does.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

PrereleaseId = Union[int, str]

_VERSION_RE = re.compile(
    r"^\s*[=v]*(\d+)\.(\d+)\.(\d+)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?\s*$"
)

# op, major, minor, patch, prerelease; any of the numbers may be an x / * wildcard
_PARTIAL_RE = re.compile(
    r"^(<=|>=|<|>|=|\^|~>?)?v?"
    r"(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)

_HYPHEN_RE = re.compile(r"^(\S+)\s+-\s+(\S+)$")

_PRERELEASE_INTENT_RE = re.compile(
    r"-(alpha|beta|rc|next|canary|dev|preview|pre|experimental)", re.IGNORECASE
)
_NUMERIC_PRERELEASE_RE = re.compile(r"-\d")


class InvalidRangeError(ValueError):
    pass


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: Tuple[PrereleaseId, ...] = ()

    @property
    def is_prerelease(self) -> bool:
        return len(self.prerelease) > 0

    @property
    def core(self) -> Tuple[int, int, int]:
        return self.major, self.minor, self.patch

    def sort_key(self):
        # Releases sort above their prereleases; numeric identifiers sort below alphanumeric ones
        if not self.prerelease:
            return self.core, (1,)
        ids = tuple((0, p, "") if isinstance(p, int) else (1, 0, p) for p in self.prerelease)
        return self.core, (0, ids)

    def __lt__(self, other: "SemVer") -> bool:
        return self.sort_key() < other.sort_key()

    def __le__(self, other: "SemVer") -> bool:
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other: "SemVer") -> bool:
        return self.sort_key() > other.sort_key()

    def __ge__(self, other: "SemVer") -> bool:
        return self.sort_key() >= other.sort_key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(p) for p in self.prerelease)
        return text


def _parse_prerelease(text: Optional[str]) -> Tuple[PrereleaseId, ...]:
    if not text:
        return ()
    return tuple(int(p) if p.isdigit() else p for p in text.split("."))


def parse_version(text: str) -> Optional[SemVer]:
    """Parse a concrete version such as ``1.2.3`` or ``v2.0.0-beta.1+build``."""
    match = _VERSION_RE.match(text or "")
    if not match:
        return None
    major, minor, patch = (int(match.group(i)) for i in (1, 2, 3))
    return SemVer(major, minor, patch, _parse_prerelease(match.group(4)))


def is_valid_version(text: str) -> bool:
    return parse_version(text) is not None


# A comparator is (operator, version); an empty comparator set matches everything
Comparator = Tuple[str, SemVer]
ComparatorSet = List[Comparator]

_NOTHING: ComparatorSet = [("<", SemVer(0, 0, 0, (0,)))]


def _is_x(part: Optional[str]) -> bool:
    return part is None or part in ("x", "X", "*")


def _expand_token(token: str) -> ComparatorSet:
    match = _PARTIAL_RE.match(token)
    if not match:
        raise InvalidRangeError(f"Invalid comparator: {token!r}")

    op, raw_major, raw_minor, raw_patch, raw_pre = match.groups()
    op = op or ""
    pre = _parse_prerelease(raw_pre)

    if _is_x(raw_major):
        if op in (">", "<"):
            return list(_NOTHING)
        return []

    major = int(raw_major)
    minor = None if _is_x(raw_minor) else int(raw_minor)
    patch = None if minor is None or _is_x(raw_patch) else int(raw_patch)

    if op == "^":
        return _expand_caret(major, minor, patch, pre)
    if op in ("~", "~>"):
        return _expand_tilde(major, minor, patch, pre)

    if minor is None:
        lower = SemVer(major, 0, 0)
        upper = SemVer(major + 1, 0, 0, (0,))
    elif patch is None:
        lower = SemVer(major, minor, 0)
        upper = SemVer(major, minor + 1, 0, (0,))
    else:
        exact = SemVer(major, minor, patch, pre)
        return [(op or "=", exact)]

    # Partial versions with an operator
    if op == ">":
        return [(">=", SemVer(upper.major, upper.minor, upper.patch))]
    if op == ">=":
        return [(">=", lower)]
    if op == "<":
        return [("<", SemVer(lower.major, lower.minor, lower.patch, (0,)))]
    if op == "<=":
        return [("<", upper)]
    return [(">=", lower), ("<", upper)]


def _expand_caret(major: int, minor: Optional[int], patch: Optional[int], pre) -> ComparatorSet:
    lower = SemVer(major, minor or 0, patch or 0, pre if patch is not None else ())
    if major > 0 or minor is None:
        upper = SemVer(major + 1, 0, 0, (0,))
    elif minor > 0 or patch is None:
        upper = SemVer(0, minor + 1, 0, (0,))
    else:
        upper = SemVer(0, 0, patch + 1, (0,))
    return [(">=", lower), ("<", upper)]


def _expand_tilde(major: int, minor: Optional[int], patch: Optional[int], pre) -> ComparatorSet:
    lower = SemVer(major, minor or 0, patch or 0, pre if patch is not None else ())
    if minor is None:
        upper = SemVer(major + 1, 0, 0, (0,))
    else:
        upper = SemVer(major, minor + 1, 0, (0,))
    return [(">=", lower), ("<", upper)]


def _expand_hyphen(low: str, high: str) -> ComparatorSet:
    low_set = _expand_token(low.lstrip("=")) if low not in ("*", "x", "X") else []
    high_set = _expand_token(high.lstrip("=")) if high not in ("*", "x", "X") else []

    comparators: ComparatorSet = []
    if low_set:
        # Lower bound is the first comparator of the X-range (or the exact version)
        comparators.append((">=", low_set[0][1]))
    if high_set:
        if len(high_set) == 1:
            comparators.append(("<=", high_set[0][1]))
        else:
            comparators.append(high_set[1])
    return comparators


def parse_range(text: str) -> List[ComparatorSet]:
    """Parse a range into a union of comparator sets."""
    if text is None:
        raise InvalidRangeError("Range is missing")

    sets: List[ComparatorSet] = []
    for part in text.split("||"):
        part = part.strip()
        # ">= 1.2.3" and "^ 1.2" are written with a space by some publishers
        part = re.sub(r"(<=|>=|<|>|=|\^|~>?)\s+", r"\1", part)

        hyphen = _HYPHEN_RE.match(part)
        if hyphen:
            sets.append(_expand_hyphen(hyphen.group(1), hyphen.group(2)))
            continue

        comparators: ComparatorSet = []
        for token in part.split():
            comparators.extend(_expand_token(token))
        sets.append(comparators)

    return sets


def is_valid_range(text: str) -> bool:
    try:
        parse_range(text)
    except InvalidRangeError:
        return False
    return True


def _test(version: SemVer, op: str, target: SemVer) -> bool:
    if op == ">":
        return version > target
    if op == ">=":
        return version >= target
    if op == "<":
        return version < target
    if op == "<=":
        return version <= target
    return version.sort_key() == target.sort_key()


def _satisfies_set(version: SemVer, comparators: ComparatorSet) -> bool:
    for op, target in comparators:
        if not _test(version, op, target):
            return False

    if version.is_prerelease:
        for _, target in comparators:
            if target.is_prerelease and target.core == version.core:
                return True
        return False

    return True


def satisfies(version: Union[str, SemVer], range_text: str) -> bool:
    sv = parse_version(version) if isinstance(version, str) else version
    if sv is None:
        return False
    try:
        sets = parse_range(range_text)
    except InvalidRangeError:
        return False
    return any(_satisfies_set(sv, s) for s in sets)


def range_includes_prerelease(range_text: str) -> bool:
    """True when the range text names a prerelease (``-beta``, ``-rc.1``, ``-0`` ...)."""
    text = range_text or ""
    return bool(_PRERELEASE_INTENT_RE.search(text) or _NUMERIC_PRERELEASE_RE.search(text))


def resolve(catalog: Iterable[str], range_text: str) -> Optional[str]:
    """
    Pick the highest version in ``catalog`` satisfying ``range_text``.

    Prereleases are only candidates when the range itself asks for one.
    Returns None when nothing matches or the range cannot be parsed.
    """
    try:
        sets = parse_range(range_text)
    except InvalidRangeError:
        return None

    allow_prerelease = range_includes_prerelease(range_text)

    best: Optional[SemVer] = None
    best_text: Optional[str] = None
    for text in catalog:
        sv = parse_version(text)
        if sv is None:
            continue
        if sv.is_prerelease and not allow_prerelease:
            continue
        if not any(_satisfies_set(sv, s) for s in sets):
            continue
        if best is None or sv > best:
            best, best_text = sv, text

    return best_text
