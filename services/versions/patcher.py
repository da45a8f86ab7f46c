"""Patch application through the external ``butler`` tool."""

from __future__ import annotations

import http.client
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable, Protocol
from urllib.error import URLError
from urllib.request import Request, urlopen

from services.versions.archive import extract_archive
from services.versions.models import ConfigError, PatchApplyError

_LOGGER = logging.getLogger(__name__)

_SUPPORTED_TARGETS = {
    ("windows", "amd64"),
    ("linux", "amd64"),
    ("linux", "arm64"),
    ("darwin", "amd64"),
    ("darwin", "arm64"),
}


class PatchApplier(Protocol):
    """Protocol describing the opaque patch-application tool."""

    def ensure_available(self) -> Path:
        """Make sure the tool is installed and return its location."""

    def apply(
        self,
        artifact: Path,
        target_dir: Path,
        scratch_dir: Path,
        on_output: Callable[[str], None] | None = None,
    ) -> list[str]:
        """Apply ``artifact`` to ``target_dir`` in place and return its output lines."""


class ButlerPatchApplier:
    """Download butler on first use and run ``butler apply``."""

    def __init__(
        self,
        tools_dir: Path,
        *,
        os_name: str,
        arch: str,
        download_base_url: str,
        user_agent: str,
        apply_timeout: float = 600.0,
        download_timeout: float = 300.0,
    ) -> None:
        self._butler_dir = Path(tools_dir) / "butler"
        self._os_name = os_name
        self._arch = arch
        self._download_base_url = download_base_url.rstrip("/")
        self._user_agent = user_agent
        self._apply_timeout = apply_timeout
        self._download_timeout = download_timeout

    @property
    def butler_path(self) -> Path:
        binary = "butler.exe" if self._os_name == "windows" else "butler"
        return self._butler_dir / binary

    def download_url(self, os_name: str | None = None, arch: str | None = None) -> str:
        os_name = os_name or self._os_name
        arch = arch or self._arch
        if (os_name, arch) not in _SUPPORTED_TARGETS:
            raise ConfigError(f"Unsupported butler platform: {os_name}-{arch}")
        return f"{self._download_base_url}/{os_name}-{arch}/LATEST/archive/default"

    def ensure_available(self) -> Path:
        butler_path = self.butler_path
        if butler_path.exists():
            _LOGGER.debug("Butler already exists at %s", butler_path)
            return butler_path

        _LOGGER.info("Butler not found, downloading")
        self._butler_dir.mkdir(parents=True, exist_ok=True)
        zip_path = self._butler_dir / "butler.zip"
        try:
            self._download_archive(zip_path)
            extract_archive(zip_path, self._butler_dir)
            if not butler_path.exists():
                raise PatchApplyError(f"Butler archive did not contain {butler_path.name}")
            if self._os_name != "windows":
                butler_path.chmod(0o755)
        finally:
            zip_path.unlink(missing_ok=True)

        _LOGGER.info("Butler installed at %s", butler_path)
        return butler_path

    def apply(
        self,
        artifact: Path,
        target_dir: Path,
        scratch_dir: Path,
        on_output: Callable[[str], None] | None = None,
    ) -> list[str]:
        if not artifact.exists():
            raise PatchApplyError(f"Patch file not found: {artifact}")
        if not target_dir.is_dir():
            raise PatchApplyError(f"Target directory not found: {target_dir}")

        butler_path = self.ensure_available()
        scratch_dir.mkdir(parents=True, exist_ok=True)
        command = [
            str(butler_path),
            "apply",
            "--staging-dir",
            str(scratch_dir),
            str(artifact),
            str(target_dir),
        ]
        _LOGGER.info("Applying patch %s to %s", artifact.name, target_dir)
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self._apply_timeout,
                check=False,
                **_hidden_window_kwargs(),
            )
        except subprocess.TimeoutExpired as exc:
            lines = _collect_lines(exc.stdout, exc.stderr)
            raise PatchApplyError(
                f"Butler timed out after {self._apply_timeout:.0f}s applying {artifact.name}",
                output=lines,
            ) from exc
        except OSError as exc:
            raise PatchApplyError(f"Failed to launch butler: {exc}") from exc

        lines = _collect_lines(completed.stdout, completed.stderr)
        for line in lines:
            _LOGGER.debug("butler: %s", line)
            if on_output is not None:
                on_output(line)

        if completed.returncode != 0:
            message = f"Butler exited with code {completed.returncode} applying {artifact.name}"
            stderr = (completed.stderr or "").strip() if isinstance(completed.stderr, str) else ""
            if stderr:
                message = f"{message}\nButler stderr: {stderr}"
            _LOGGER.error("Failed to apply patch %s", artifact.name)
            raise PatchApplyError(message, output=lines)

        _LOGGER.info("Patch %s applied successfully", artifact.name)
        return lines

    def _download_archive(self, zip_path: Path) -> None:
        url = self.download_url()
        try:
            self._fetch(url, zip_path)
        except PatchApplyError:
            if self._os_name == "darwin" and self._arch == "arm64":
                _LOGGER.warning("darwin-arm64 butler unavailable, trying darwin-amd64")
                self._fetch(self.download_url("darwin", "amd64"), zip_path)
            else:
                raise

    def _fetch(self, url: str, destination: Path) -> None:
        _LOGGER.info("Downloading butler from %s", url)
        request = Request(url, headers={"User-Agent": self._user_agent})
        try:
            with urlopen(request, timeout=self._download_timeout) as response, destination.open(
                "wb"
            ) as handle:  # nosec - fixed tool host
                shutil.copyfileobj(response, handle)
        except (OSError, URLError, http.client.HTTPException) as exc:
            destination.unlink(missing_ok=True)
            raise PatchApplyError(f"Failed to download butler from {url}: {exc}") from exc


def _collect_lines(*streams: Any) -> list[str]:
    lines: list[str] = []
    for stream in streams:
        if stream is None:
            continue
        if isinstance(stream, bytes):
            stream = stream.decode("utf-8", errors="replace")
        lines.extend(line for line in stream.splitlines() if line.strip())
    return lines


def _hidden_window_kwargs() -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    if os.name == "nt":  # pragma: no cover - exercised on Windows
        creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0)
        if creationflags:
            kwargs["creationflags"] = creationflags
    kwargs["stdin"] = subprocess.DEVNULL
    return kwargs


__all__ = ["ButlerPatchApplier", "PatchApplier"]
