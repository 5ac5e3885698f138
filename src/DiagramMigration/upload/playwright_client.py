# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.upload.playwright_client",
#   "purpose": "Playwright-driven login and template upload against the target web application",
#   "sections": [
#     {"id": "playwrightuploadclient", "name": "PlaywrightUploadClient", "anchor": "class-playwrightuploadclient", "kind": "class"}
#   ]
# }
# === /NAVMAP ===
"""Browser-driven upload client.

The target application has no API; diagrams are submitted through its web
form. A single Chromium instance is launched on :meth:`authenticate`. Login
runs once in a throwaway context and its storage state (cookies and local
storage) is written to the snapshot file. Every :meth:`submit` opens a fresh
context seeded from that snapshot, so concurrent uploads never share pages.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from DiagramMigration.api import Credentials, Diagram, SessionSnapshot
from DiagramMigration.config import MigrationConfig, TargetConfig, UploadFormConfig
from DiagramMigration.errors import AuthenticationError, ConfigurationError, UploadError
from DiagramMigration.store import safe_name

__all__ = ["PlaywrightUploadClient"]

logger = logging.getLogger(__name__)


class PlaywrightUploadClient:
    """:class:`~DiagramMigration.upload.UploadClient` backed by Playwright Chromium."""

    def __init__(
        self,
        target: TargetConfig,
        form: UploadFormConfig,
        *,
        browser: Optional[Browser] = None,
    ) -> None:
        if not target.base_url:
            raise ConfigurationError("target.base_url is not configured")
        self.target = target
        self.form = form
        self._browser = browser
        self._playwright: Optional[Playwright] = None

    @classmethod
    def from_config(cls, config: MigrationConfig) -> PlaywrightUploadClient:
        return cls(config.target, config.upload_form)

    @property
    def base_url(self) -> str:
        return self.target.base_url or ""

    @property
    def upload_url(self) -> str:
        return f"{self.base_url}{self.form.upload_path}"

    async def _ensure_browser(self) -> Browser:
        if self._browser is None:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.target.headless)
            logger.debug("Launched Chromium (headless=%s)", self.target.headless)
        return self._browser

    async def _new_context(self, storage_state: Any = None) -> BrowserContext:
        browser = await self._ensure_browser()
        if storage_state is None:
            context = await browser.new_context()
        else:
            context = await browser.new_context(storage_state=storage_state)
        context.set_default_timeout(self.target.action_timeout_ms)
        return context

    async def authenticate(self, credentials: Credentials) -> SessionSnapshot:
        state_path = Path(self.target.state_path)
        try:
            context = await self._new_context()
            try:
                page = await context.new_page()
                await page.goto(self.base_url)
                await page.fill(self.form.username_selector, credentials.username)
                await page.fill(self.form.password_selector, credentials.password)
                async with page.expect_navigation():
                    await page.click(self.form.login_selector)
                storage_state = await context.storage_state(path=state_path)
            finally:
                await context.close()
        except PlaywrightTimeoutError as exc:
            raise AuthenticationError(
                f"Timed out logging in to {self.base_url}: {exc}", service="target"
            ) from exc
        except PlaywrightError as exc:
            raise AuthenticationError(
                f"Login to {self.base_url} failed: {exc}", service="target"
            ) from exc

        logger.debug("Saved session snapshot to %s", state_path)
        return SessionSnapshot(state_path=state_path, storage_state=storage_state)

    async def submit(self, snapshot: SessionSnapshot, diagram: Diagram) -> None:
        storage_state = dict(snapshot.storage_state) or str(snapshot.state_path)
        try:
            context = await self._new_context(storage_state)
            try:
                page = await context.new_page()
                await page.goto(self.upload_url)
                await page.fill(self.form.group_selector, self.form.group)
                await page.fill(self.form.name_selector, safe_name(diagram.name))
                await page.set_input_files(
                    self.form.file_selector,
                    files={
                        "name": self.form.filename,
                        "mimeType": self.form.mime_type,
                        "buffer": diagram.payload,
                    },
                )
                await page.click(self.form.submit_selector)
                await page.wait_for_load_state()
            finally:
                await context.close()
        except PlaywrightTimeoutError as exc:
            raise UploadError(f"Timed out uploading: {exc}", name=diagram.name) from exc
        except PlaywrightError as exc:
            raise UploadError(f"Upload failed: {exc}", name=diagram.name) from exc

        logger.debug(
            "Uploaded %r",
            diagram.name,
            extra={"extra_fields": {"diagram": diagram.name, "phase": "upload"}},
        )

    async def close(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
