"""biomelsp - keeps Biome language server sessions in sync with a workspace.

The package discovers projects inside the open workspace folders, locates a
Biome binary for each of them and maintains exactly one language server
session per project while folders, settings and lockfiles change.
"""

from biomelsp.constants import VERSION
from biomelsp.orchestrator import ExtensionContext, ExtensionState, Orchestrator
from biomelsp.project import Project
from biomelsp.session import Session, SessionState

__version__ = VERSION

__all__ = [
    "ExtensionContext",
    "ExtensionState",
    "Orchestrator",
    "Project",
    "Session",
    "SessionState",
    "__version__",
]
