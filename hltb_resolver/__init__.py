"""HLTB Resolver - Resolve game titles to HowLongToBeat completion times."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hltb-resolver")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"
