"""Fixed names shared across the package."""

from __future__ import annotations

# Settings namespace read from the host
NAMESPACE = "biome"

# Package version, also reported as clientInfo.version
VERSION = "0.1.0"

# npm package that carries the platform companion packages as optional deps
MAIN_PACKAGE = "@biomejs/biome"
COMPANION_SCOPE = "@biomejs"

# Language identifiers a session accepts documents for
SUPPORTED_LANGUAGES: tuple[str, ...] = (
    "astro",
    "css",
    "graphql",
    "grit",
    "html",
    "javascript",
    "javascriptreact",
    "json",
    "jsonc",
    "snippets",
    "svelte",
    "tailwindcss",
    "typescript",
    "typescriptreact",
    "vue",
)

# File extension -> language identifier, used by hosts without language detection
EXTENSION_LANGUAGES: dict[str, str] = {
    ".astro": "astro",
    ".css": "css",
    ".graphql": "graphql",
    ".gql": "graphql",
    ".grit": "grit",
    ".html": "html",
    ".js": "javascript",
    ".cjs": "javascript",
    ".mjs": "javascript",
    ".jsx": "javascriptreact",
    ".json": "json",
    ".jsonc": "jsonc",
    ".svelte": "svelte",
    ".ts": "typescript",
    ".cts": "typescript",
    ".mts": "typescript",
    ".tsx": "typescriptreact",
    ".vue": "vue",
}

# Dependency lockfiles whose changes restart the owning project's session
LOCKFILES: tuple[str, ...] = (
    "package-lock.json",
    "npm-shrinkwrap.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "bun.lock",
    "bun.lockb",
)

# Default configuration file names looked up in a project directory
CONFIG_FILE_NAMES: tuple[str, ...] = ("biome.json", "biome.jsonc")

# Dependency manager metadata; its presence disables the download offer
DEPENDENCY_MANIFEST = "package.json"

# Document schemes served by the global session
GLOBAL_SCHEMES: tuple[str, ...] = ("untitled", "vscode-userdata")

FILE_SCHEME = "file"

# Storage key for the binary fetched by the download strategy
DOWNLOADED_BINARY_KEY = "biome.downloadedBinary"
