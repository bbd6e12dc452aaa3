"""conductor: command execution pipeline with dynamic agent selection."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("conductor")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
