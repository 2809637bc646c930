"""Full-page browser snapshots with a pooled Chromium and blind watermarks."""

from .capture import (
    CaptureError,
    CaptureRequest,
    CaptureResult,
    CaptureValidationError,
    build_watermark_text,
    capture,
    capture_with_metadata,
    wait_for_page,
)
from .devices import DEFAULT_DEVICE, profile_key, resolve_device_profile
from .imaging import digest_image, is_valid_hex_color, process_image, trim_background
from .logging import configure_logging, jlog, logging_context, set_global_context, snaplog
from .playwright import CHROMIUM_LAUNCH_ARGS, ChromiumLauncher, close_quietly, wait_assets_ready
from .pool import DEFAULT_MAX_CONTEXTS, ContextPool
from .watermark import add_watermark, embed_payload, extract_payload, extract_watermark

__all__ = [
    "CHROMIUM_LAUNCH_ARGS",
    "DEFAULT_DEVICE",
    "DEFAULT_MAX_CONTEXTS",
    "CaptureError",
    "CaptureRequest",
    "CaptureResult",
    "CaptureValidationError",
    "ChromiumLauncher",
    "ContextPool",
    "add_watermark",
    "build_watermark_text",
    "capture",
    "capture_with_metadata",
    "close_quietly",
    "configure_logging",
    "digest_image",
    "embed_payload",
    "extract_payload",
    "extract_watermark",
    "is_valid_hex_color",
    "jlog",
    "logging_context",
    "process_image",
    "profile_key",
    "resolve_device_profile",
    "set_global_context",
    "snaplog",
    "trim_background",
    "wait_assets_ready",
    "wait_for_page",
]
