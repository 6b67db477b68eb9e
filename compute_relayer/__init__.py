"""Top-level package for the compute relayer."""

from importlib import metadata


def __getattr__(name: str) -> str:
    """Expose the package version via ``compute_relayer.__version__``."""
    if name == "__version__":
        try:
            return metadata.version("compute-relayer")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]
