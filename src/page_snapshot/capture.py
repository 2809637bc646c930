"""Capture orchestration: one request in, one (optionally watermarked) image out."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, TimeoutError

from .devices import resolve_device_profile
from .imaging import digest_image, is_valid_hex_color, process_image
from .logging import jlog, logging_context, snaplog
from .playwright import wait_assets_ready
from .pool import ContextPool

UTC = getattr(datetime, "UTC", timezone.utc)

DEFAULT_WAIT_TIMEOUT_MS = int(os.getenv("WAIT_TIMEOUT_MS", "30000"))
DEFAULT_PAGE_TIMEOUT_MS = int(os.getenv("PAGE_TIMEOUT_MS", "30000"))

WAIT_STATES = {0: "load", 1: "domcontentloaded", 2: "networkidle"}
_WAIT_LABELS = {0: "load", 1: "dom", 2: "networkidle"}
_UA_RE = re.compile(r"(Chrome|Firefox|Safari|Edg)/([\d.]+)")


class CaptureValidationError(ValueError):
    """The request is missing required input; no browser work was done."""


class CaptureError(RuntimeError):
    """Navigation or rendering failed inside the browser."""


def _coerce_wait(value: Any) -> int:
    try:
        wait = int(value)
    except (TypeError, ValueError):
        return 0
    return wait if wait > 0 else 0


@dataclass(frozen=True)
class CaptureRequest:
    url: str | None = None
    html: str | None = None
    wait_for: int = 0
    trim_color: str = ""
    device: str | None = None
    cookies: list[dict[str, Any]] = field(default_factory=list)
    evaluate: str | None = None
    watermark: str | None = None
    request_id: str | None = None

    def __post_init__(self) -> None:
        if not self.url and not self.html:
            raise CaptureValidationError('Either "url" or "html" parameter is required')
        object.__setattr__(self, "wait_for", _coerce_wait(self.wait_for))
        if not is_valid_hex_color(self.trim_color):
            object.__setattr__(self, "trim_color", "")
        object.__setattr__(self, "cookies", list(self.cookies or []))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CaptureRequest":
        """Build a request from a JSON body; accepts camelCase or snake_case keys."""

        def pick(*names: str) -> Any:
            for name in names:
                if data.get(name) is not None:
                    return data[name]
            return None

        cookies = pick("cookies")
        request_id = pick("id", "request_id")
        if cookies is not None and not isinstance(cookies, list):
            raise CaptureValidationError('"cookies" must be a list')
        return cls(
            url=pick("url"),
            html=pick("html"),
            wait_for=pick("waitFor", "wait_for", "wait") or 0,
            trim_color=pick("trimColor", "trim_color", "trim") or "",
            device=pick("device"),
            cookies=cookies or [],
            evaluate=pick("evaluate"),
            watermark=pick("watermark"),
            request_id=str(request_id) if request_id is not None else None,
        )

    @property
    def target(self) -> str:
        return self.url if self.url else "html"


@dataclass(frozen=True)
class CaptureResult:
    image: bytes
    sha256: str
    width: int
    height: int
    watermark: str | None = None


def build_watermark_text(
    request: CaptureRequest,
    profile: Mapping[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> str | None:
    """Human-readable provenance descriptor embedded into the screenshot."""

    if not request.watermark:
        return None

    parts = [request.watermark, (now or datetime.now(UTC)).strftime("%Y-%m-%d %H:%M:%S")]
    if request.url:
        parts.append(f"URL:{request.url}")
    if request.html:
        parts.append("HTML")
    if request.device:
        parts.append(f"Device:{request.device}")
    match = _UA_RE.search((profile or {}).get("user_agent") or "")
    if match:
        parts.append(f"UA:{match.group(1)} {match.group(2)}")
    parts.append(f"Wait:{_WAIT_LABELS.get(request.wait_for, f'{request.wait_for}ms')}")
    if request.trim_color:
        parts.append(f"Trim:#{request.trim_color}")
    if request.cookies:
        parts.append(f"Cookies:{len(request.cookies)}")
    if request.evaluate:
        parts.append("JS:true")
    return " | ".join(parts)


async def wait_for_page(page: Page, wait_for: int, *, timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS) -> None:
    """Apply the wait policy; running out of time is not an error."""

    state = WAIT_STATES.get(wait_for)
    if state is None:
        await page.wait_for_timeout(min(wait_for, timeout_ms))
        return
    try:
        await page.wait_for_load_state(state, timeout=timeout_ms)
    except TimeoutError:
        jlog("warning", event="wait_timeout", state=state, timeout_ms=timeout_ms)


async def _navigate(page: Page, request: CaptureRequest, *, timeout_ms: int) -> None:
    try:
        if request.url:
            await page.goto(request.url, wait_until="domcontentloaded", timeout=timeout_ms)
        else:
            await page.set_content(request.html or "", wait_until="domcontentloaded", timeout=timeout_ms)
    except PlaywrightError as exc:
        raise CaptureError(f"navigation failed: {exc}") from exc


async def _run_script(page: Page, request: CaptureRequest) -> None:
    try:
        await page.evaluate(request.evaluate)
    except Exception as exc:
        jlog("error", event="evaluate_error", request_id=request.request_id, error=str(exc))


async def capture_with_metadata(
    pool: ContextPool,
    request: CaptureRequest,
    *,
    wait_timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS,
    page_timeout_ms: int = DEFAULT_PAGE_TIMEOUT_MS,
) -> CaptureResult:
    """Render ``request`` on a pooled page and return the image with its digest and descriptor."""

    if request.url and request.html:
        jlog("warning", event="url_and_html_given", request_id=request.request_id)

    with logging_context(request_id=request.request_id):
        profile = resolve_device_profile(await pool.device_catalog(), request.device)
        snaplog("capture_start", request_id=request.request_id, target=request.target, device=request.device)

        async with pool.surface(profile) as page:
            if request.cookies:
                await page.context.add_cookies(request.cookies)
            await _navigate(page, request, timeout_ms=page_timeout_ms)
            await wait_for_page(page, request.wait_for, timeout_ms=wait_timeout_ms)
            if request.evaluate:
                await _run_script(page, request)
            await wait_assets_ready(page)
            try:
                raw = await page.screenshot(full_page=True)
            except PlaywrightError as exc:
                raise CaptureError(f"screenshot failed: {exc}") from exc

        watermark_text = build_watermark_text(request, profile)
        image = process_image(raw, request.trim_color, watermark_text)
        sha, width, height = digest_image(image)
        snaplog("capture_done", request_id=request.request_id, target=request.target, width=width, height=height, sha256=sha)
        return CaptureResult(image=image, sha256=sha, width=width, height=height, watermark=watermark_text)


async def capture(pool: ContextPool, request: CaptureRequest, **timeouts: int) -> bytes:
    """Render ``request`` and return the final image bytes."""

    return (await capture_with_metadata(pool, request, **timeouts)).image


__all__ = [
    "WAIT_STATES",
    "CaptureError",
    "CaptureRequest",
    "CaptureResult",
    "CaptureValidationError",
    "build_watermark_text",
    "capture",
    "capture_with_metadata",
    "wait_for_page",
]
