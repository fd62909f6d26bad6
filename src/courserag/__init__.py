"""CourseRAG: embedding, retrieval and answer synthesis for course content."""

from importlib import metadata


def __getattr__(name: str) -> str:
    if name == "__version__":
        try:
            return metadata.version("courserag")
        except metadata.PackageNotFoundError:  # pragma: no cover - source checkout without install
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]
