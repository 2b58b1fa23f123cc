import re
from typing import Optional, Tuple

from vulntree.core import semver
from vulntree.errors import InvalidInputError

MAX_NAME_LENGTH = 214

# Characters encodeURIComponent leaves untouched
_NAME_PART = r"[A-Za-z0-9\-_.!~*'()]+"
_NAME_RE = re.compile(rf"^(?:@({_NAME_PART})/)?({_NAME_PART})$")
_TAG_RE = re.compile(r"^[A-Za-z][A-Za-z0-9._\-]*$")

_RESERVED_NAMES = {"node_modules", "favicon.ico"}


def validate_package_name(name: str) -> str:
    """
    Checks ``name`` against the registry naming rules (legacy mixed-case names
    are accepted since they can still be installed) and returns it unchanged.
    """
    if not isinstance(name, str) or not name:
        raise InvalidInputError("package name", "name length must be greater than zero")
    if name.strip() != name:
        raise InvalidInputError("package name", "name cannot contain leading or trailing spaces")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidInputError("package name", f"name can no longer contain more than {MAX_NAME_LENGTH} characters")
    if name.startswith((".", "_")):
        raise InvalidInputError("package name", "name cannot start with a period or underscore")
    if name.lower() in _RESERVED_NAMES:
        raise InvalidInputError("package name", f"{name} is not a valid package name")

    match = _NAME_RE.match(name)
    if not match:
        raise InvalidInputError("package name", "name can only contain URL-friendly characters")
    if match.group(1) and match.group(1).startswith((".", "_")):
        raise InvalidInputError("package name", "scope cannot start with a period or underscore")

    return name


def validate_version(version: str) -> str:
    """Accepts an exact version, a semver range, or a dist-tag name."""
    if not isinstance(version, str) or not version.strip():
        raise InvalidInputError("version", "version must not be empty")

    version = version.strip()
    if semver.is_valid_version(version) or _TAG_RE.match(version) or semver.is_valid_range(version):
        return version

    raise InvalidInputError("version", f"'{version}' is not a valid version, range or tag")


def parse_package_spec(spec: str) -> Tuple[str, Optional[str]]:
    """
    Split a user supplied package reference into (name, version).

    Accepts ``name``, ``name@version``, ``@scope/name@version`` and the path
    forms ``name/v/version`` and ``@scope/name/v/version``.
    """
    spec = (spec or "").strip().rstrip("/")
    if not spec:
        raise InvalidInputError("package", "package reference must not be empty")

    segments = spec.split("/")
    if "v" in segments:
        v_index = segments.index("v")
        if 0 < v_index < len(segments) - 1:
            return "/".join(segments[:v_index]), "/".join(segments[v_index + 1:])

    at = spec.rfind("@")
    if at > 0:
        name, version = spec[:at], spec[at + 1:]
        if not version:
            raise InvalidInputError("version", "version after '@' must not be empty")
        return name, version

    return spec, None
