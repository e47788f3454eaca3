"""Biome binary resolution."""

from biomelsp.locator.locator import BinaryLocator, LocatedBinary, parse_version
from biomelsp.locator.platform import PlatformInfo
from biomelsp.locator.strategies import (
    BinaryLocatorStrategy,
    DownloadStrategy,
    NodeModulesStrategy,
    PathStrategy,
    SettingsStrategy,
    StrategyKind,
    YarnPnpStrategy,
)

__all__ = [
    "BinaryLocator",
    "BinaryLocatorStrategy",
    "DownloadStrategy",
    "LocatedBinary",
    "NodeModulesStrategy",
    "PathStrategy",
    "PlatformInfo",
    "SettingsStrategy",
    "StrategyKind",
    "YarnPnpStrategy",
    "parse_version",
]
