"""Shared Chromium instance with an LRU cache of per-device browser contexts.

Launching the browser and creating a context per device profile are the slow
parts of a capture.  ``ContextPool`` launches the browser once, keeps at most
``max_contexts`` contexts keyed by :func:`profile_key`, and hands out a fresh
page per request.  Pages are short lived; contexts live until they are evicted
as least recently used or the pool is torn down.

All cache reads and writes happen under one ``asyncio.Lock``.  The browser
launch is a single shared task so concurrent first requests wait on the same
launch instead of starting their own.
"""

from __future__ import annotations

import asyncio
import os
from collections import OrderedDict
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any, Protocol

from .devices import profile_key
from .logging import jlog
from .playwright import ChromiumLauncher, close_quietly

DEFAULT_MAX_CONTEXTS = int(os.getenv("MAX_CONTEXTS", "10"))


class Launcher(Protocol):
    devices: Mapping[str, Any]

    async def launch(self) -> Any: ...

    async def shutdown(self) -> None: ...


class ContextPool:
    """Owns the browser handle and the bounded context cache for one service."""

    def __init__(self, max_contexts: int = DEFAULT_MAX_CONTEXTS, *, launcher: Launcher | None = None) -> None:
        self._max_contexts = _check_bound(max_contexts)
        self._launcher: Launcher = launcher if launcher is not None else ChromiumLauncher()
        self._browser: Any = None
        self._launching: asyncio.Task | None = None
        self._contexts: OrderedDict[str, Any] = OrderedDict()
        self._lock = asyncio.Lock()

    @property
    def max_contexts(self) -> int:
        return self._max_contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def cached_keys(self) -> list[str]:
        """Profile keys from least to most recently used."""
        return list(self._contexts)

    def configure(self, max_contexts: int) -> None:
        """Change the bound for later acquisitions; existing contexts are kept."""
        self._max_contexts = _check_bound(max_contexts)
        jlog("info", event="pool_configured", max_contexts=self._max_contexts)

    async def start(self) -> None:
        """Launch the browser ahead of the first request."""
        await self._get_browser()

    async def device_catalog(self) -> Mapping[str, Any]:
        await self._get_browser()
        return self._launcher.devices

    async def acquire_surface(self, profile: Mapping[str, Any]) -> Any:
        """Return a new page from the context cached for ``profile``."""

        key = profile_key(profile)
        async with self._lock:
            context = self._contexts.get(key)
            if context is not None:
                self._contexts.move_to_end(key)
            else:
                while len(self._contexts) >= self._max_contexts:
                    await self._evict_oldest()
                browser = await self._get_browser()
                context = await browser.new_context(**profile)
                self._contexts[key] = context
                jlog("info", event="context_created", contexts=len(self._contexts), key=key)
            return await context.new_page()

    async def release_surface(self, page: Any) -> None:
        """Close ``page``; its context stays cached."""
        await close_quietly(page, event="page_close_failed")

    @asynccontextmanager
    async def surface(self, profile: Mapping[str, Any]) -> AsyncIterator[Any]:
        page = await self.acquire_surface(profile)
        try:
            yield page
        finally:
            await self.release_surface(page)

    async def teardown(self) -> None:
        """Close every context, then the browser.  Safe to call repeatedly."""

        async with self._lock:
            launching = self._launching
            if launching is not None:
                try:
                    await asyncio.shield(launching)
                except Exception:
                    pass
            closed = len(self._contexts)
            while self._contexts:
                _, context = self._contexts.popitem(last=False)
                await close_quietly(context, event="context_close_failed")
            browser, self._browser = self._browser, None
            await close_quietly(browser, event="browser_close_failed")
            try:
                await self._launcher.shutdown()
            except Exception as exc:
                jlog("warning", event="launcher_shutdown_failed", error=str(exc))
        if closed or browser is not None:
            jlog("info", event="pool_teardown", contexts_closed=closed)

    async def _evict_oldest(self) -> None:
        key, context = self._contexts.popitem(last=False)
        await close_quietly(context, event="context_close_failed", key=key)
        jlog("info", event="context_evicted", contexts=len(self._contexts), key=key)

    async def _get_browser(self) -> Any:
        if self._browser is not None:
            return self._browser
        if self._launching is None:
            self._launching = asyncio.ensure_future(self._launch())
        # Shielded so one cancelled waiter does not abort the launch for the rest.
        return await asyncio.shield(self._launching)

    async def _launch(self) -> Any:
        try:
            browser = await self._launcher.launch()
            self._browser = browser
            jlog("info", event="engine_launched")
            return browser
        except Exception as exc:
            jlog("error", event="engine_launch_failed", error=str(exc))
            raise
        finally:
            self._launching = None


def _check_bound(max_contexts: int) -> int:
    if int(max_contexts) < 1:
        raise ValueError(f"max_contexts must be at least 1, got {max_contexts}")
    return int(max_contexts)


__all__ = ["DEFAULT_MAX_CONTEXTS", "ContextPool", "Launcher"]
