# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Read-only NuGet registry client used to locate and stream runner packages."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from typing import Any, Final, Protocol

import requests

from selfprof.errors import DownloadFailedError

from .models import RegistryApi, ResolvedPackage
from .versioning import SemanticVersion, select_latest

LOGGER = logging.getLogger(__name__)

CHUNK_SIZE: Final[int] = 64 * 1024
DEFAULT_TIMEOUT: Final[float] = 60.0
PACKAGE_BASE_ADDRESS: Final[str] = "PackageBaseAddress/3.0.0"

_FEED_NAMESPACES: Final[dict[str, str]] = {
    "a": "http://www.w3.org/2005/Atom",
    "d": "http://schemas.microsoft.com/ado/2007/08/dataservices",
    "m": "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata",
}
_NETWORK_HINT: Final[str] = "Please check the registry URL and Internet connection."


@dataclass(slots=True)
class PackageStream:
    """Streaming body of a package download.

    Attributes:
        length: Declared content length in bytes, when the server sent one.
        chunks: Iterator yielding the package bytes.
    """

    length: int | None
    chunks: Iterator[bytes]


class PackageSource(Protocol):
    """Resolve and stream registry packages."""

    def resolve(self, package_id: str, pin: SemanticVersion) -> ResolvedPackage:
        """Return the newest package version matching ``pin``'s ``major.minor``."""

    def open(self, package: ResolvedPackage) -> AbstractContextManager[PackageStream]:
        """Open a streaming download of ``package``."""


class NuGetRegistry:
    """Resolve runner packages against a NuGet v2 feed or v3 service index."""

    def __init__(
        self,
        api: RegistryApi = RegistryApi.V3,
        url: str | None = None,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialise the client.

        Args:
            api: Registry protocol spoken by ``url``.
            url: Feed (v2) or service index (v3) URL; defaults to nuget.org.
            session: Optional HTTP session, primarily for connection reuse.
            timeout: Per-request timeout in seconds.
        """

        self.api = api
        self.url = url or api.default_url
        self._session = session or requests.Session()
        self._timeout = timeout

    def resolve(self, package_id: str, pin: SemanticVersion) -> ResolvedPackage:
        """Return the newest ``package_id`` version whose ``major.minor`` equals ``pin``.

        Raises:
            DownloadFailedError: If the registry is unreachable, answers with an
                error, or lists no matching version.
        """

        if self.api is RegistryApi.V2:
            return self._resolve_v2(package_id, pin)
        return self._resolve_v3(package_id, pin)

    @contextmanager
    def open(self, package: ResolvedPackage) -> Iterator[PackageStream]:
        """Stream the package content from ``package.url``.

        Raises:
            DownloadFailedError: If the request or the transfer fails.
        """

        LOGGER.info("Downloading %s %s from %s", package.package_id, package.version, package.url)
        try:
            with self._session.get(package.url, stream=True, timeout=self._timeout) as response:
                response.raise_for_status()
                declared = response.headers.get("Content-Length", "")
                length = int(declared) if declared.isdigit() else None
                yield PackageStream(length=length, chunks=response.iter_content(chunk_size=CHUNK_SIZE))
        except requests.RequestException as exc:
            raise DownloadFailedError(
                f"Failed to download runner package. {_NETWORK_HINT}",
                url=package.url,
            ) from exc

    def _resolve_v2(self, package_id: str, pin: SemanticVersion) -> ResolvedPackage:
        feed_url = f"{_combine(self.url, 'FindPackagesById()')}?id='{package_id}'"
        LOGGER.info("Querying v2 feed %s", feed_url)
        try:
            root = ET.fromstring(self._get(feed_url).content)
        except ET.ParseError as exc:
            raise DownloadFailedError("Registry feed is not valid XML", url=feed_url) from exc

        sources: dict[str, str] = {}
        for entry in root.iterfind("a:entry", _FEED_NAMESPACES):
            content = entry.find("a:content", _FEED_NAMESPACES)
            version = entry.findtext("m:properties/d:Version", default="", namespaces=_FEED_NAMESPACES)
            source = content.get("src") if content is not None else None
            if not source:
                raise DownloadFailedError("Registry feed entry has no content/@src", url=feed_url)
            if version:
                sources[version] = source
        latest = select_latest(sources, pin)
        if latest is None:
            raise DownloadFailedError(f"Unable to find the latest package of v{pin}", url=feed_url)
        return ResolvedPackage(package_id=package_id, version=latest, url=sources[latest])

    def _resolve_v3(self, package_id: str, pin: SemanticVersion) -> ResolvedPackage:
        LOGGER.info("Querying v3 service index %s", self.url)
        index = self._get_json(self.url)
        base_url = next(
            (
                resource.get("@id")
                for resource in index.get("resources", [])
                if resource.get("@type") == PACKAGE_BASE_ADDRESS
            ),
            None,
        )
        if not base_url:
            raise DownloadFailedError(f"Unable to find `{PACKAGE_BASE_ADDRESS}`", url=self.url)

        lowered = package_id.lower()
        versions_url = _combine(base_url, f"{lowered}/index.json")
        LOGGER.info("Listing versions at %s", versions_url)
        versions = self._get_json(versions_url).get("versions", [])
        latest = select_latest(versions, pin)
        if latest is None:
            raise DownloadFailedError(f"Unable to find the latest package of v{pin}", url=versions_url)
        url = _combine(base_url, f"{lowered}/{latest}/{lowered}.{latest}.nupkg")
        return ResolvedPackage(package_id=package_id, version=latest, url=url)

    def _get(self, url: str) -> requests.Response:
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DownloadFailedError(f"Failed to query the package registry. {_NETWORK_HINT}", url=url) from exc
        return response

    def _get_json(self, url: str) -> dict[str, Any]:
        try:
            payload = self._get(url).json()
        except ValueError as exc:
            raise DownloadFailedError("Registry response is not valid JSON", url=url) from exc
        if not isinstance(payload, dict):
            raise DownloadFailedError("Registry response is not a JSON object", url=url)
        return payload


def _combine(base: str, sub_path: str) -> str:
    return f"{base.rstrip('/')}/{sub_path.lstrip('/')}"


__all__ = ["CHUNK_SIZE", "NuGetRegistry", "PackageSource", "PackageStream"]
