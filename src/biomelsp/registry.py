"""Computes the set of projects that should have a session."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from biomelsp.constants import CONFIG_FILE_NAMES, FILE_SCHEME
from biomelsp.logging import get_logger
from biomelsp.project import Project, ProjectDefinition

if TYPE_CHECKING:
    from biomelsp.host.protocol import Host, WorkspaceFolder

log = get_logger("registry")


class ProjectRegistry:
    """Derives projects from workspace folders and the `projects` setting.

    With no folders open, the parent directory of the active file is the
    only project. Otherwise every enabled folder contributes its explicit
    project definitions, or one implicit project at its root. Projects are
    dropped when their directory does not exist, then when they require a
    configuration file and have none.
    """

    def __init__(self, host: Host) -> None:
        self._host = host

    def discover_projects(self) -> list[Project]:
        folders = list(self._host.workspace.folders)
        if not folders:
            return self._single_file_projects()

        projects: list[Project] = []
        for folder in folders:
            projects.extend(self._folder_projects(folder))
        return projects

    def _single_file_projects(self) -> list[Project]:
        settings = self._host.settings
        if settings.get("enabled", None, True) is False:
            return []

        document = self._host.workspace.active_document
        if document is None or document.scheme != FILE_SCHEME or document.path is None:
            return []

        directory = document.path.parent
        config_file = settings.get("globalConfigFile", directory)
        return [
            Project(
                uri=directory,
                folder=None,
                config_file=Path(config_file).expanduser() if isinstance(config_file, str) and config_file else None,
            )
        ]

    def definitions_for(self, folder: WorkspaceFolder) -> list[ProjectDefinition]:
        """Valid definitions that apply to `folder`; the implicit root one if none do."""
        raw = self._host.settings.get("projects", folder.uri)
        entries: list[Any] = raw if isinstance(raw, list) else []
        if raw is not None and not isinstance(raw, list):
            log.warning("Ignoring malformed projects setting for %s", folder.name)

        definitions: list[ProjectDefinition] = []
        for entry in entries:
            try:
                definition = ProjectDefinition.model_validate(entry)
            except ValidationError as e:
                log.warning("Ignoring invalid project definition %r: %s", entry, e.errors()[0]["msg"])
                continue
            if definition.folder is not None and definition.folder != folder.name:
                continue
            definitions.append(definition)

        return definitions or [ProjectDefinition()]

    def _folder_projects(self, folder: WorkspaceFolder) -> list[Project]:
        if self._host.settings.get("enabled", folder.uri, True) is False:
            log.debug("Biome is disabled for %s", folder.name)
            return []

        projects: list[Project] = []
        for definition in self.definitions_for(folder):
            directory = definition.directory_in(folder)
            if not directory.is_dir():
                log.warning("Project directory %s does not exist", directory)
                continue

            config_file = directory / definition.config_file if definition.config_file else None
            if self._requires_config(directory) and not self._has_config(directory, config_file):
                log.info("Skipping %s: no Biome configuration file found", directory)
                continue

            projects.append(Project(uri=directory, folder=folder, config_file=config_file))
        return projects

    def _requires_config(self, directory: Path) -> bool:
        return self._host.settings.get("requireConfigFile", directory, False) is True

    @staticmethod
    def _has_config(directory: Path, config_file: Path | None) -> bool:
        candidates = [config_file] if config_file is not None else []
        candidates += [directory / name for name in CONFIG_FILE_NAMES]
        return any(candidate.is_file() for candidate in candidates)
