"""Storage backend dependency checks."""

from __future__ import annotations

from importlib.util import find_spec

_BACKEND_DEPENDENCIES: dict[str, tuple[str, str]] = {
    "s3": ("aioboto3", "pip install 'runwatch[s3]'"),
}


def ensure_storage_dependency(backend: str) -> None:
    """Validate optional dependency for a concrete storage backend."""
    normalized = backend.strip().lower()
    if normalized == "local":
        return
    dependency = _BACKEND_DEPENDENCIES.get(normalized)
    if dependency is None:
        supported = ", ".join(sorted([*list(_BACKEND_DEPENDENCIES.keys()), "local"]))
        raise ValueError(f"Unsupported storage backend: {backend}. Supported: {supported}")

    package_name, install_command = dependency
    if find_spec(package_name) is not None:
        return
    raise RuntimeError(
        f"Storage backend '{normalized}' requires optional dependency '{package_name}'. "
        f"Install with: {install_command}"
    )
