import logging
import ssl
from urllib import parse

import httpx

from mediaflow_merge.configs import settings
from mediaflow_merge.const import STORAGE_FILES_PATH

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    def __init__(self, status_code, message):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def build_default_ssl_context() -> ssl.SSLContext:
    """
    Build the default SSL context using the system trust store.
    """
    return ssl.create_default_context()


DEFAULT_SSL_CONTEXT = build_default_ssl_context()


def create_httpx_client(
    follow_redirects: bool = True,
    ssl_context: ssl.SSLContext | None = None,
    **kwargs,
) -> httpx.AsyncClient:
    """
    Create an HTTPX AsyncClient configured from the transport settings.

    Args:
        follow_redirects (bool): Whether to follow 3xx redirects automatically.
        ssl_context (ssl.SSLContext | None): Explicit SSLContext to use. Defaults to the system trust store.
        **kwargs: Additional AsyncClient keyword arguments (``transport`` overrides the configured mounts).

    Returns:
        httpx.AsyncClient: Configured client.
    """
    if "transport" not in kwargs:
        kwargs.setdefault("mounts", settings.transport_config.get_mounts())
    kwargs.setdefault("timeout", settings.transport_config.timeout)
    kwargs.setdefault("headers", {"user-agent": settings.user_agent})

    verify = ssl_context or DEFAULT_SSL_CONTEXT
    if settings.transport_config.disable_ssl_verification_globally:
        verify = False

    return httpx.AsyncClient(follow_redirects=follow_redirects, verify=verify, **kwargs)


async def download_bytes(client: httpx.AsyncClient, url: str, headers: dict | None = None) -> bytes:
    """
    Download a whole resource into memory with a single GET.

    Args:
        client (httpx.AsyncClient): HTTP client to use for the request.
        url (str): Target URL.
        headers (dict): Extra request headers.

    Returns:
        bytes: Response body.

    Raises:
        DownloadError: On timeout, transport failure or a non-success status.
    """
    try:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
        return response.content
    except httpx.TimeoutException:
        logger.debug(f"Timeout while downloading {url}")
        raise DownloadError(504, f"Timeout while downloading {url}")
    except httpx.HTTPStatusError as e:
        logger.debug(f"HTTP error {e.response.status_code} while downloading {url}")
        raise DownloadError(e.response.status_code, f"HTTP error {e.response.status_code} while downloading {url}")
    except httpx.RequestError as e:
        logger.debug(f"Error downloading {url}: {e}")
        raise DownloadError(502, f"Error downloading {url}: {e}")


def build_storage_url(storage_endpoint: str, key: str) -> str:
    """Resolve a storage key to ``<storage_endpoint>/getFiles?key=<key>``."""
    base_url = storage_endpoint.rstrip("/")
    return f"{base_url}{STORAGE_FILES_PATH}?{parse.urlencode({'key': key})}"
