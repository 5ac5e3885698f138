"""Upload clients for the target web application."""

from .base import UploadClient

__all__ = ["UploadClient", "PlaywrightUploadClient"]


def __getattr__(name: str):
    # Defer the Playwright import until a real browser client is requested
    if name == "PlaywrightUploadClient":
        from .playwright_client import PlaywrightUploadClient

        return PlaywrightUploadClient
    raise AttributeError(name)
