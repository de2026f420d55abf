"""Configuration constants for blockgraph."""

import os
from pathlib import Path

# Result limits for hierarchy searches.
DEFAULT_LIMIT: int = 50
MAX_LIMIT: int = 500

# Depth used by deep operators (>>, <<, =>>, <<=, <<=>>) when none is given.
DEFAULT_DEEP_DEPTH: int = 2
MAX_HIERARCHY_DEPTH: int = 10

# Expansion passes beyond this level return conditions unchanged.
MAX_EXPANSION_LEVEL: int = 4

# API token location for the remote graph backend. First file found is used.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/blockgraph-token.txt").expanduser(),
    Path("~/.config/secret/blockgraph-token.txt").expanduser(),
    Path(f"/run/user/{os.getuid()}/blockgraph-token"),
]

API_BASE_URL: str = "https://api.roamresearch.com/api/graph"
API_TIMEOUT: float = 30.0

# Directory with graph exports. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/blockgraph-export").expanduser(),
    Path("~/.blockgraph-export").expanduser(),
    Path("~/.config/blockgraph-export").expanduser(),
    Path("/tmp/blockgraph-export"),
]

# Default archive location (holds archive.db).
ARCHIVE_DIRECTORY: Path = Path("~/.local/share/blockgraph").expanduser()


def resolve_data_directory() -> Path:
    """Return the first existing export directory, or the first candidate."""
    env_dir = os.environ.get("BLOCKGRAPH_SOURCE")
    if env_dir:
        return Path(env_dir)
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]


def resolve_archive_directory() -> Path:
    """Return the archive directory, honoring BLOCKGRAPH_ARCHIVE_DIR."""
    env_dir = os.environ.get("BLOCKGRAPH_ARCHIVE_DIR")
    return Path(env_dir) if env_dir else ARCHIVE_DIRECTORY
