"""Downloading remote filter packages.

This module provides:
- PackageFetcher: protocol of a fetch backend
- GitHubArchiveFetcher: downloads ``github.com/<owner>/<repo>[//<subdir>]``
  locators as zip archives over HTTPS
"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

import httpx

from packforge.core.errors import ErrorKind, InstallError

logger = logging.getLogger(__name__)

DEFAULT_REF = "HEAD"
CODELOAD_URL = "https://codeload.github.com/{owner}/{repo}/zip/{ref}"


class PackageFetcher(Protocol):
    """Fetches the package identified by a locator into a directory."""

    def fetch(self, locator: str, destination: Path) -> None: ...


@dataclass
class GitHubLocator:
    """Parsed ``github.com/<owner>/<repo>[//<subdir>][?ref=<ref>]`` locator."""

    owner: str
    repo: str
    subdir: str = ""
    ref: str = DEFAULT_REF

    @classmethod
    def parse(cls, locator: str) -> GitHubLocator:
        """Parse a locator string.

        Raises:
            InstallError: If the locator is not a GitHub repository path.
        """
        rest, _, query = locator.partition("?")
        ref = DEFAULT_REF
        if query.startswith("ref="):
            ref = query[len("ref="):] or DEFAULT_REF
        for prefix in ("https://", "http://"):
            if rest.startswith(prefix):
                rest = rest[len(prefix):]
        repo_part, _, subdir = rest.partition("//")
        parts = repo_part.strip("/").split("/")
        if len(parts) != 3 or parts[0] != "github.com" or not parts[1] or not parts[2]:
            raise InstallError(
                f"Unsupported filter locator \"{locator}\". "
                "Expected github.com/<owner>/<repo>[//<path>].",
                ErrorKind.INSTALL_FETCH,
                locator=locator,
            )
        return cls(owner=parts[1], repo=parts[2], subdir=subdir.strip("/"), ref=ref)

    @property
    def archive_url(self) -> str:
        return CODELOAD_URL.format(owner=self.owner, repo=self.repo, ref=self.ref)


class GitHubArchiveFetcher:
    """Downloads a repository archive and extracts one subdirectory."""

    def __init__(self, timeout: float = 60.0, client: httpx.Client | None = None) -> None:
        """Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds.
            client: Optional preconfigured httpx client (used by tests).
        """
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def fetch(self, locator: str, destination: Path) -> None:
        """Download the package of a locator into destination.

        Raises:
            InstallError: If the download or extraction fails.
        """
        parsed = GitHubLocator.parse(locator)
        logger.debug(f"Downloading {parsed.archive_url}")
        try:
            response = self._client.get(parsed.archive_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise InstallError(
                f"Failed to download \"{locator}\".",
                ErrorKind.INSTALL_FETCH,
                locator=locator,
            ) from e

        try:
            with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
                extracted = self._extract(archive, parsed.subdir, Path(destination))
        except (zipfile.BadZipFile, OSError) as e:
            raise InstallError(
                f"Failed to extract \"{locator}\".",
                ErrorKind.INSTALL_FETCH,
                locator=locator,
                path=str(destination),
            ) from e
        if extracted == 0:
            raise InstallError(
                f"Path \"{parsed.subdir}\" does not exist in {parsed.owner}/{parsed.repo}.",
                ErrorKind.INSTALL_FETCH,
                locator=locator,
            )

    @staticmethod
    def _extract(archive: zipfile.ZipFile, subdir: str, destination: Path) -> int:
        """Extract the files under ``<top>/<subdir>/`` into destination."""
        count = 0
        for info in archive.infolist():
            parts = PurePosixPath(info.filename).parts
            if len(parts) < 2:
                continue
            # Drop the "<repo>-<ref>" top-level directory
            inner = PurePosixPath(*parts[1:])
            if subdir:
                try:
                    inner = inner.relative_to(subdir)
                except ValueError:
                    continue
            if ".." in inner.parts or str(inner) == ".":
                continue
            target = destination / inner
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(target, "wb") as dst:
                dst.write(src.read())
            count += 1
        return count
