"""Document selectors deciding which documents a session serves.

A selector is a list of `lsprotocol` text document filters, the same values
an editor client registers for the server. Path patterns are matched with
`pathspec` wildcards against the document's absolute path.
"""

from __future__ import annotations

import functools
from collections.abc import Iterable, Sequence
from pathlib import Path

from lsprotocol import types
from pathspec import PathSpec

from biomelsp.constants import FILE_SCHEME, GLOBAL_SCHEMES, SUPPORTED_LANGUAGES
from biomelsp.host.protocol import TextDocument

DocumentFilter = types.TextDocumentFilterLanguage


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> PathSpec:
    return PathSpec.from_lines("gitwildmatch", [pattern.lstrip("/")])


def pattern_matches(pattern: str, path: Path) -> bool:
    """Whether the absolute `path` matches a glob such as `/w/app/**/*`."""
    return _compile(pattern).match_file(path.as_posix().lstrip("/"))


def filter_matches(document_filter: DocumentFilter, document: TextDocument) -> bool:
    if document_filter.language and document.language_id != document_filter.language:
        return False
    if document_filter.scheme and document.scheme != document_filter.scheme:
        return False
    pattern = document_filter.pattern
    if pattern is None:
        return True
    if not isinstance(pattern, str) or document.path is None:
        return False
    return pattern_matches(pattern, document.path)


def project_selector(directory: Path, languages: Iterable[str] = SUPPORTED_LANGUAGES) -> list[DocumentFilter]:
    """Files on disk under `directory`."""
    pattern = f"{directory.as_posix().rstrip('/')}/**/*"
    return [DocumentFilter(language=language, scheme=FILE_SCHEME, pattern=pattern) for language in languages]


def global_selector(languages: Iterable[str] = SUPPORTED_LANGUAGES) -> list[DocumentFilter]:
    """Unsaved and virtual settings documents."""
    return [
        DocumentFilter(language=language, scheme=scheme)
        for language in languages
        for scheme in GLOBAL_SCHEMES
    ]


def selector_matches(selector: Sequence[DocumentFilter], document: TextDocument) -> bool:
    return any(filter_matches(document_filter, document) for document_filter in selector)
