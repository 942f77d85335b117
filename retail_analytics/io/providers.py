"""
Flat File Providers

Fetch text and JSON documents by path and answer existence probes.
Supports:
- Static HTTP servers (httpx)
- Local directory trees
- In-memory documents for tests and demos
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

import httpx
import structlog

from retail_analytics.config import get_settings
from retail_analytics.config.settings import ProviderSettings
from retail_analytics.exceptions import FetchError

logger = structlog.get_logger(__name__)


@runtime_checkable
class FlatFileProvider(Protocol):
    """Read-only access to published flat files"""

    async def get_text(self, path: str) -> str:
        ...

    async def get_json(self, path: str) -> Any:
        ...

    async def exists(self, path: str) -> bool:
        ...


class HttpFlatFileProvider:
    """
    Provider backed by a static file HTTP server.

    Example:
        async with HttpFlatFileProvider("http://localhost:5173") as provider:
            manifest = await provider.get_json("/data/retail/orders/index.json")
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Cache-Control": "no-store"},
            )
        return self._client

    async def _get(self, path: str) -> httpx.Response:
        url = self._url(path)
        try:
            response = await self._get_client().get(url)
        except httpx.HTTPError as e:
            raise FetchError(url, f"Request failed for {url}: {e}") from e
        if response.status_code >= 400:
            raise FetchError(url, f"HTTP {response.status_code} for {url}", response.status_code)
        return response

    async def get_text(self, path: str) -> str:
        """Fetch a document as text"""
        response = await self._get(path)
        return response.text

    async def get_json(self, path: str) -> Any:
        """Fetch and decode a JSON document"""
        response = await self._get(path)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(self._url(path), f"Invalid JSON at {path}: {e}") from e

    async def exists(self, path: str) -> bool:
        """
        Probe for a file.

        Tries HEAD first and falls back to a one-byte ranged GET for dev
        servers that do not answer HEAD.
        """
        url = self._url(path)
        client = self._get_client()
        try:
            response = await client.head(url)
            if response.is_success:
                return True
        except httpx.HTTPError as e:
            logger.debug("HEAD probe failed, trying ranged GET", url=url, error=str(e))
        try:
            response = await client.get(url, headers={"Range": "bytes=0-0"})
            return response.is_success
        except httpx.HTTPError as e:
            logger.debug("Existence probe failed", url=url, error=str(e))
            return False

    async def aclose(self) -> None:
        """Close the underlying client if this provider created it"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpFlatFileProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class LocalFlatFileProvider:
    """Provider reading from a directory that mirrors the published layout"""

    def __init__(self, root: Union[str, Path], encoding: str = "utf-8"):
        self.root = Path(root)
        self.encoding = encoding

    def _resolve(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    async def get_text(self, path: str) -> str:
        file_path = self._resolve(path)
        try:
            return file_path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise FetchError(str(file_path), f"File not readable: {file_path} ({e})") from e

    async def get_json(self, path: str) -> Any:
        text = await self.get_text(path)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise FetchError(path, f"Invalid JSON at {path}: {e}") from e

    async def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()


class MemoryFlatFileProvider:
    """
    Provider serving documents from a dict.

    Values may be text or JSON-serializable objects. Paths listed in
    ``failing`` raise ``FetchError`` to simulate transport failures.
    """

    def __init__(self, files: Optional[Dict[str, Any]] = None, failing: Optional[set] = None):
        self.files: Dict[str, Any] = dict(files or {})
        self.failing = set(failing or ())
        self.requests: list = []

    def put(self, path: str, content: Any) -> None:
        self.files[path] = content

    async def get_text(self, path: str) -> str:
        self.requests.append(path)
        if path in self.failing or path not in self.files:
            raise FetchError(path, f"HTTP 404 for {path}", 404)
        content = self.files[path]
        return content if isinstance(content, str) else json.dumps(content)

    async def get_json(self, path: str) -> Any:
        text = await self.get_text(path)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise FetchError(path, f"Invalid JSON at {path}: {e}") from e

    async def exists(self, path: str) -> bool:
        return path in self.files and path not in self.failing


def create_provider(settings: Optional[ProviderSettings] = None) -> FlatFileProvider:
    """Create the provider selected by configuration"""
    settings = settings or get_settings().provider
    if settings.kind == "local":
        return LocalFlatFileProvider(settings.root_path)
    return HttpFlatFileProvider(settings.base_url, timeout=settings.request_timeout_seconds)
