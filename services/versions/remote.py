"""HTTP access to the patch distribution server."""

from __future__ import annotations

import http.client
import logging
from dataclasses import dataclass
from typing import Iterator, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from services.versions.constants import PATCH_EXTENSION
from services.versions.models import DownloadError

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatchProbe:
    """Outcome of an existence check for one artifact."""

    exists: bool
    size: int | None = None


class PatchSource(Protocol):
    """Protocol describing where patch artifacts are probed and fetched."""

    def build_url(self, branch: str, prev: int, target: int) -> str:
        """Return the URL of the ``prev -> target`` artifact."""

    def probe(self, branch: str, prev: int, target: int) -> PatchProbe:
        """Check whether an artifact exists without transferring its body."""

    def iter_chunks(self, branch: str, prev: int, target: int) -> Iterator[bytes]:
        """Yield the artifact body, raising :class:`DownloadError` on failure."""


class PatchServer:
    """Talk to ``{base}/{os}/{arch}/{branch}/{prev}/{target}.pwr`` over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        os_name: str,
        arch: str,
        user_agent: str,
        probe_timeout: float = 10.0,
        download_timeout: float = 600.0,
        chunk_size: int = 128 * 1024,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._os_name = os_name
        self._arch = arch
        self._user_agent = user_agent
        self._probe_timeout = probe_timeout
        self._download_timeout = download_timeout
        self._chunk_size = chunk_size

    def build_url(self, branch: str, prev: int, target: int) -> str:
        return (
            f"{self._base_url}/{self._os_name}/{self._arch}/{branch}/"
            f"{prev}/{target}{PATCH_EXTENSION}"
        )

    def probe(self, branch: str, prev: int, target: int) -> PatchProbe:
        url = self.build_url(branch, prev, target)
        request = Request(url, method="HEAD", headers={"User-Agent": self._user_agent})
        try:
            with urlopen(request, timeout=self._probe_timeout) as response:  # nosec - fixed patch host
                status = getattr(response, "status", 200)
                length = response.headers.get("Content-Length")
        except HTTPError as exc:
            _LOGGER.debug("Probe %s answered HTTP %s", url, exc.code)
            return PatchProbe(False)
        except (OSError, URLError, http.client.HTTPException) as exc:
            _LOGGER.debug("Probe %s failed: %s", url, exc)
            return PatchProbe(False)

        if not 200 <= status < 300:
            return PatchProbe(False)
        return PatchProbe(True, _parse_content_length(length))

    def iter_chunks(self, branch: str, prev: int, target: int) -> Iterator[bytes]:
        url = self.build_url(branch, prev, target)
        request = Request(
            url,
            headers={"User-Agent": self._user_agent, "Accept": "*/*"},
        )
        _LOGGER.debug("Requesting %s", url)
        try:
            with urlopen(request, timeout=self._download_timeout) as response:  # nosec - fixed patch host
                for chunk in iter(lambda: response.read(self._chunk_size), b""):
                    yield chunk
        except (OSError, URLError, http.client.HTTPException) as exc:
            raise DownloadError(f"Failed to download {url}: {exc}") from exc


def _parse_content_length(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    if value < 0:
        return None
    return value


__all__ = ["PatchProbe", "PatchServer", "PatchSource"]
