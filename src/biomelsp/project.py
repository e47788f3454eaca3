"""Project values and the project definition settings shape."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from biomelsp.host.protocol import WorkspaceFolder


@dataclass(frozen=True)
class Project:
    """A directory served by one language server session.

    Equality and hashing use (folder, uri) only. A project whose
    configuration file changed compares equal to its previous value but is
    still a distinct value that replaces the old one in the orchestrator.
    """

    uri: Path
    folder: WorkspaceFolder | None = None
    config_file: Path | None = field(default=None, compare=False)

    @property
    def name(self) -> str:
        if self.folder is None:
            return self.uri.name or str(self.uri)
        relative = self.uri.relative_to(self.folder.uri) if self.folder.contains(self.uri) else self.uri
        if relative == Path("."):
            return self.folder.name
        return f"{self.folder.name}/{relative.as_posix()}"

    def contains(self, path: Path) -> bool:
        return path == self.uri or self.uri in path.parents

    def __str__(self) -> str:
        return self.name


class ProjectDefinition(BaseModel):
    """One entry of the `biome.projects` setting.

    Example:
        {"folder": "frontend", "path": "packages/app", "configFile": "biome.base.json"}
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    folder: StrictStr | None = None
    path: StrictStr = "/"
    config_file: StrictStr | None = Field(default=None, alias="configFile")

    def directory_in(self, folder: WorkspaceFolder) -> Path:
        """Resolve `path` inside `folder`; a leading slash means the folder root."""
        return folder.uri / self.path.lstrip("/\\")
