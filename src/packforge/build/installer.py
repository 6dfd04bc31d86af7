"""Installing remote filter packages into the local cache.

This module provides:
- DependencyInstaller: gathers every locator referenced by a project and
  makes sure each one is present under the cache root

Installs are idempotent per locator: an existing directory is never
fetched again and is not checked for freshness. A fetch that fails midway
can leave a partial directory behind; it has to be removed by hand
(``packforge clean --cache``) before installing again.
"""

from __future__ import annotations

import logging
from pathlib import Path

from packforge.build.fetch import PackageFetcher
from packforge.build.filters import RemoteFilter
from packforge.build.locators import url_to_path
from packforge.build.project import Project
from packforge.core.errors import ErrorKind, FileSystemError, InstallError

logger = logging.getLogger(__name__)


class DependencyInstaller:
    """Fetches the remote filters of a project into the cache root."""

    def __init__(self, project: Project, cache_root: Path, fetcher: PackageFetcher) -> None:
        """Initialize the installer.

        Args:
            project: Loaded project configuration.
            cache_root: Directory holding installed packages.
            fetcher: Backend that downloads a locator.
        """
        self._project = project
        self._cache_root = Path(cache_root)
        self._fetcher = fetcher

    @property
    def cache_root(self) -> Path:
        return self._cache_root

    def gather_locators(self) -> list[str]:
        """List the locator of every remote filter reference.

        Locators are emitted once per reference, in profile order; the same
        locator may appear several times. An entry with a url contributes
        only that url, pinned to its version.
        """
        locators: list[str] = []
        for profile in self._project.profiles.values():
            for f in profile.filters:
                if isinstance(f, RemoteFilter):
                    locators.append(f.locator)
        return locators

    def install_path(self, locator: str) -> Path:
        """Deterministic installation directory of a locator."""
        return url_to_path(self._cache_root, locator)

    def install_all(self) -> list[str]:
        """Install every gathered locator in sequence.

        Returns:
            Locators that were fetched (cached ones are not listed).

        Raises:
            InstallError: On the first failed fetch; later locators are not
                installed.
        """
        logger.info("Installing dependencies...")
        try:
            self._cache_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileSystemError(
                f"Failed to create directory \"{self._cache_root}\".",
                ErrorKind.MKDIR,
                path=str(self._cache_root),
            ) from e

        fetched: list[str] = []
        for locator in self.gather_locators():
            if self.install_one(locator):
                fetched.append(locator)
        logger.info("Dependencies installed.")
        return fetched

    def install_one(self, locator: str) -> bool:
        """Make sure one locator is installed.

        Returns:
            True if the package was fetched, False if it was already there.

        Raises:
            InstallError: If fetching fails.
        """
        path = self.install_path(locator)
        if path.exists():
            logger.debug(f"Dependency {locator} is already installed")
            return False

        logger.info(f"Installing dependency {locator}...")
        try:
            self._fetcher.fetch(locator, path)
        except InstallError:
            raise
        except Exception as e:
            raise InstallError(
                f"Could not install dependency \"{locator}\".",
                ErrorKind.INSTALL_FETCH,
                locator=locator,
                path=str(path),
            ) from e
        return True
