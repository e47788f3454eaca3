"""Language client transport: client, launchers and document filters."""

from biomelsp.lsp.client import LanguageClient
from biomelsp.lsp.filters import DocumentFilter, global_selector, project_selector
from biomelsp.lsp.launch import LaunchOptions, Launcher, SocketLauncher, StdioLauncher, create_launcher

__all__ = [
    "DocumentFilter",
    "LanguageClient",
    "LaunchOptions",
    "Launcher",
    "SocketLauncher",
    "StdioLauncher",
    "create_launcher",
    "global_selector",
    "project_selector",
]
