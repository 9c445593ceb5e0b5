"""Transport — moves files between the local disk and remote storage.

Backends are selected purely from the URI scheme:

1. **Object store** (``s3://``): the AWS CLI (``aws s3 cp SRC DST``), run
   as an asyncio subprocess so credentials, profiles and regions resolve
   exactly as they do for operators on the same host.
2. **HTTP stream** (``http://``, ``https://``): an httpx ``AsyncClient``
   streaming the response body straight to disk.

Nothing here retries.  A transfer interrupted part-way may leave a partial
file at its destination; callers treat every transport error as fatal
for the run.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from enum import Enum
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from otprunner.config import RunnerSettings, settings as default_settings

logger = logging.getLogger(__name__)

SUPPORTED_DOWNLOAD_SCHEMES: tuple[str, ...] = ("http", "https", "s3")


class TransportError(RuntimeError):
    """Raised when a download, upload or metadata lookup fails."""


class Backend(str, Enum):
    OBJECT_STORE = "object_store"
    HTTP = "http"


def select_backend(uri: str) -> Backend:
    """Return the backend responsible for *uri*."""
    scheme = urlsplit(uri).scheme.lower()
    if scheme == "s3":
        return Backend.OBJECT_STORE
    if scheme in ("http", "https"):
        return Backend.HTTP
    raise TransportError(
        f"Unsupported URI scheme `{scheme}:` for {uri}. Supported schemes are: "
        + ", ".join(f"`{s}:`" for s in SUPPORTED_DOWNLOAD_SCHEMES)
    )


class Transport:
    """Fetches inputs and publishes artifacts.

    Parameters
    ----------
    settings:
        Runner settings (AWS CLI path, HTTP timeout, metadata URL).
    http_client:
        Optional pre-configured httpx client.  When omitted a client is
        created for each HTTP call.
    """

    def __init__(
        self,
        *,
        settings: RunnerSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or default_settings
        self._http_client = http_client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_if_absent(self, uri: str, dest: str | Path) -> bool:
        """Download *uri* to *dest* unless *dest* already exists.

        Returns ``True`` if a transfer happened.

        Raises
        ------
        TransportError
            If the scheme is unsupported or the transfer fails.
        """
        dest = Path(dest)
        if dest.exists():
            logger.debug("%s already exists, skipping download of %s", dest, uri)
            return False

        backend = select_backend(uri)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TransportError(f"Could not create {dest.parent}: {exc}") from exc
        if backend is Backend.OBJECT_STORE:
            await self._aws_cp(uri, str(dest))
        else:
            await self._http_download(uri, dest)
        return True

    async def put_file(self, path: str | Path, uri: str) -> bool:
        """Upload *path* to *uri*.

        Returns ``True`` on success and ``False`` on failure; failures are
        logged, never raised.
        """
        logger.info("uploading %s to %s", path, uri)
        try:
            if select_backend(uri) is not Backend.OBJECT_STORE:
                raise TransportError(f"Uploads are only supported to s3:// URIs, got {uri}")
            await self._aws_cp(str(path), uri)
        except TransportError as exc:
            logger.error("Failed to upload %s to %s! See error:", path, uri)
            logger.error("%s", exc)
            return False
        logger.info("Successfully uploaded %s to %s!", path, uri)
        return True

    async def fetch_instance_id(self) -> str:
        """Return the id of the cloud instance this runner is on."""
        url = self._settings.instance_metadata_url
        try:
            async with self._client() as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to query {url}: {exc}") from exc
        return response.text.strip()

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    async def _aws_cp(self, src: str, dst: str) -> None:
        command = [self._settings.aws_cli, "s3", "cp", src, dst]
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TransportError(f"Could not run `{' '.join(command)}`: {exc}") from exc

        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise TransportError(
                f"`{' '.join(command)}` exited with code {proc.returncode}: "
                f"{stderr.decode('utf-8', errors='replace').strip()}"
            )

    async def _http_download(self, uri: str, dest: Path) -> None:
        try:
            async with self._client() as client:
                async with client.stream("GET", uri) as response:
                    response.raise_for_status()
                    with dest.open("wb") as out:
                        async for chunk in response.aiter_bytes():
                            out.write(chunk)
        except httpx.HTTPError as exc:
            raise TransportError(f"HTTP download of {uri} failed: {exc}") from exc
        except OSError as exc:
            raise TransportError(f"Could not write {dest}: {exc}") from exc

    @contextlib.asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(
            timeout=self._settings.http_timeout_seconds,
            follow_redirects=True,
        ) as client:
            yield client
