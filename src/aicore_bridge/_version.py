from __future__ import annotations

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("aicore-bridge")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"
