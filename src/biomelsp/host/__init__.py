"""Host environment contracts.

The standalone implementation lives in `biomelsp.host.local` and is imported
explicitly.
"""

from biomelsp.host.protocol import (
    BinaryDownloader,
    ConfigurationChange,
    DownloadedBinary,
    FileWatcherFactory,
    Host,
    Prompter,
    Settings,
    Storage,
    TextDocument,
    Unsubscribe,
    Workspace,
    WorkspaceFolder,
)

__all__ = [
    "BinaryDownloader",
    "ConfigurationChange",
    "DownloadedBinary",
    "FileWatcherFactory",
    "Host",
    "Prompter",
    "Settings",
    "Storage",
    "TextDocument",
    "Unsubscribe",
    "Workspace",
    "WorkspaceFolder",
]
