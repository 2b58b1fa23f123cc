from .base import Registry
from .npm import NpmRegistry

REGISTRIES = {
    "npm": NpmRegistry,
}


def get_registry(ecosystem: str = "npm", **kwargs) -> Registry:
    """Returns a registry client for the given ecosystem."""
    try:
        registry_cls = REGISTRIES[ecosystem]
    except KeyError:
        raise ValueError(f"Unsupported ecosystem: {ecosystem}") from None
    return registry_cls(**kwargs)
