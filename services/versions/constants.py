"""Constants shared across the version management modules."""

from __future__ import annotations

BRANCH_RELEASE = "release"
BRANCH_PRE_RELEASE = "pre-release"
BRANCH_BETA = "beta"
BRANCH_ALPHA = "alpha"
AVAILABLE_BRANCHES = (BRANCH_RELEASE, BRANCH_PRE_RELEASE, BRANCH_BETA, BRANCH_ALPHA)

PATCH_EXTENSION = ".pwr"
CONSECUTIVE_MISSES_TO_STOP = 5

INDEX_FILENAME = "index.json"
METADATA_FILENAME = "version.json"
USER_DATA_DIRNAME = "UserData"
BUTLER_SCRATCH_DIRNAME = ".butler-staging"
DOWNLOAD_TEMP_SUFFIX = ".tmp"
BACKUP_INFIX = ".backup-"

MIN_EXECUTABLE_SIZE = 4096
WINDOWS_CLIENT_NAMES = ("Hytale.exe", "HytaleClient.exe", "client.exe", "client.jar")
POSIX_CLIENT_NAMES = (
    "Hytale",
    "HytaleClient",
    "client",
    "client.jar",
    "HytaleClient.jar",
    "Hytale.jar",
)
CLIENT_SEARCH_SUBDIRS = ("", "bin", "client", "Client")

MAX_ARCHIVE_TOTAL_BYTES = 200 * 1024 * 1024  # 200 MiB
MAX_ARCHIVE_FILE_SIZE = 150 * 1024 * 1024  # 150 MiB per file
MAX_ARCHIVE_ENTRIES = 200
MAX_COMPRESSION_RATIO = 100  # Uncompressed vs compressed bytes

LEGACY_BRANCH = BRANCH_RELEASE
