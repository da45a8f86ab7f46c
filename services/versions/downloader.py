"""Fetch patch artifacts into the local cache with size verification."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from services.versions.constants import DOWNLOAD_TEMP_SUFFIX
from services.versions.models import IntegrityError
from services.versions.remote import PatchSource
from services.versions.storage import VersionLayout

_LOGGER = logging.getLogger(__name__)


class PatchDownloader:
    """Download ``<branch>_<prev>_<target>.pwr`` into the shared cache.

    Concurrent calls for different artifacts are safe. Two writers racing on
    the same artifact end with whichever rename lands last.
    """

    def __init__(self, source: PatchSource, layout: VersionLayout) -> None:
        self._source = source
        self._layout = layout

    def fetch(self, branch: str, prev: int, target: int) -> Path:
        file_path = self._layout.cached_patch_path(branch, prev, target)
        expected_size = self._source.probe(branch, prev, target).size

        if file_path.exists():
            if expected_size is None:
                _LOGGER.debug("Reusing cached %s (server size unknown)", file_path.name)
                return file_path
            actual = file_path.stat().st_size
            if actual == expected_size:
                _LOGGER.info("Reusing cached patch %s (%s bytes)", file_path.name, actual)
                return file_path
            _LOGGER.info(
                "Discarding cached patch %s: %s bytes on disk, %s expected",
                file_path.name,
                actual,
                expected_size,
            )
            file_path.unlink()

        temp_path = file_path.with_name(file_path.name + DOWNLOAD_TEMP_SUFFIX)
        temp_path.unlink(missing_ok=True)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        _LOGGER.info(
            "Downloading %s for %s (%s)",
            file_path.name,
            branch,
            self._source.build_url(branch, prev, target),
        )
        try:
            with temp_path.open("wb") as destination:
                for chunk in self._source.iter_chunks(branch, prev, target):
                    destination.write(chunk)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        os.replace(temp_path, file_path)

        if expected_size is not None:
            actual = file_path.stat().st_size
            if actual != expected_size:
                file_path.unlink(missing_ok=True)
                raise IntegrityError(
                    f"Patch download incomplete for {branch} {prev}->{target}: "
                    f"{actual}/{expected_size} bytes",
                    expected_size=expected_size,
                    actual_size=actual,
                )

        _LOGGER.debug("Stored %s (%s bytes)", file_path, file_path.stat().st_size)
        return file_path


__all__ = ["PatchDownloader"]
