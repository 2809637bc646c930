"""Command-line entrypoint for page snapshots.

Sub-commands
------------
capture   Render one URL or HTML fragment and write the image.
extract   Print the blind watermark of an image as JSON.
batch     Render every request of a JSONL manifest with N concurrent workers
          sharing one browser pool.

Usage (examples)
----------------
page-snapshot capture --url https://example.com --wait 2 --device "iPhone 13" \\
  --watermark run-42 --output example.png

page-snapshot capture --html-file fragment.html --trim ffffff --output frag.png

page-snapshot extract example.png

page-snapshot batch manifest.jsonl --output-dir out/ --concurrency 4

Each manifest line is a JSON request body, e.g.
``{"id": "home", "url": "https://example.com", "waitFor": 1, "watermark": "run-42"}``.

Exit codes: 0 success, 1 capture/engine failure, 2 invalid input.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import re
import signal
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .capture import (
    DEFAULT_PAGE_TIMEOUT_MS,
    DEFAULT_WAIT_TIMEOUT_MS,
    CaptureRequest,
    CaptureResult,
    CaptureValidationError,
    capture_with_metadata,
)
from .logging import configure_logging, jlog, logging_context, set_global_context
from .pool import DEFAULT_MAX_CONTEXTS, ContextPool
from .watermark import extract_watermark

EXIT_OK = 0
EXIT_SERVER_ERROR = 1
EXIT_CLIENT_ERROR = 2
EXIT_INTERRUPTED = 130

DEFAULT_CONCURRENCY = 2
RESULTS_FILE = "results.jsonl"


@dataclass(frozen=True)
class CliArgs:
    command: str
    url: str | None = None
    html_file: str | None = None
    request_path: str | None = None
    wait: int | None = None
    trim: str | None = None
    device: str | None = None
    cookies_path: str | None = None
    evaluate: str | None = None
    watermark: str | None = None
    output: str | None = None
    image: str | None = None
    manifest_path: str | None = None
    output_dir: str | None = None
    concurrency: int = DEFAULT_CONCURRENCY
    max_contexts: int = DEFAULT_MAX_CONTEXTS
    wait_timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS
    page_timeout_ms: int = DEFAULT_PAGE_TIMEOUT_MS


def _add_pool_options(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--max-contexts",
        type=int,
        default=DEFAULT_MAX_CONTEXTS,
        help="Upper bound on cached browser contexts (default from MAX_CONTEXTS env or 10).",
    )
    p.add_argument(
        "--wait-timeout-ms",
        type=int,
        default=DEFAULT_WAIT_TIMEOUT_MS,
        help="Upper bound for any wait policy (default from WAIT_TIMEOUT_MS env or 30000).",
    )
    p.add_argument(
        "--page-timeout-ms",
        type=int,
        default=DEFAULT_PAGE_TIMEOUT_MS,
        help="Timeout for navigation and content loading (default from PAGE_TIMEOUT_MS env or 30000).",
    )


def parse_args(argv: list[str] | None = None) -> CliArgs:
    p = argparse.ArgumentParser(prog="page-snapshot", description="Full-page snapshots with blind watermarks")
    sub = p.add_subparsers(dest="command", required=True)

    cap = sub.add_parser("capture", help="Capture a single URL or HTML fragment")
    cap.add_argument("--url")
    cap.add_argument("--html-file", help="Read the HTML fragment to render from this file")
    cap.add_argument("--request", dest="request_path", help="JSON request body; flags override its fields")
    cap.add_argument("--wait", type=int, help="0=load, 1=dom-ready, 2=network-idle, >2 milliseconds")
    cap.add_argument("--trim", help="3 or 6 digit hex background colour to trim (invalid values are ignored)")
    cap.add_argument("--device", help='Playwright device name (default "Desktop Chrome")')
    cap.add_argument("--cookies", dest="cookies_path", help="JSON file holding a list of cookies")
    cap.add_argument("--evaluate", help="JavaScript to evaluate before the screenshot")
    cap.add_argument("--watermark", help="Tag embedded as a blind watermark")
    cap.add_argument("--output", "-o", help="Output file (default: stdout)")
    _add_pool_options(cap)

    ext = sub.add_parser("extract", help="Print the blind watermark of an image")
    ext.add_argument("image")

    bat = sub.add_parser("batch", help="Capture every request in a JSONL manifest")
    bat.add_argument("manifest_path")
    bat.add_argument("--output-dir", required=True)
    bat.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY)
    _add_pool_options(bat)

    ns = p.parse_args(argv)
    if getattr(ns, "concurrency", DEFAULT_CONCURRENCY) < 1:
        p.error("--concurrency must be at least 1")
    if getattr(ns, "max_contexts", DEFAULT_MAX_CONTEXTS) < 1:
        p.error("--max-contexts must be at least 1")

    return CliArgs(
        command=ns.command,
        url=getattr(ns, "url", None),
        html_file=getattr(ns, "html_file", None),
        request_path=getattr(ns, "request_path", None),
        wait=getattr(ns, "wait", None),
        trim=getattr(ns, "trim", None),
        device=getattr(ns, "device", None),
        cookies_path=getattr(ns, "cookies_path", None),
        evaluate=getattr(ns, "evaluate", None),
        watermark=getattr(ns, "watermark", None),
        output=getattr(ns, "output", None),
        image=getattr(ns, "image", None),
        manifest_path=getattr(ns, "manifest_path", None),
        output_dir=getattr(ns, "output_dir", None),
        concurrency=getattr(ns, "concurrency", DEFAULT_CONCURRENCY),
        max_contexts=getattr(ns, "max_contexts", DEFAULT_MAX_CONTEXTS),
        wait_timeout_ms=getattr(ns, "wait_timeout_ms", DEFAULT_WAIT_TIMEOUT_MS),
        page_timeout_ms=getattr(ns, "page_timeout_ms", DEFAULT_PAGE_TIMEOUT_MS),
    )


# ============================
# Request assembly
# ============================


def _read_json(path: str) -> Any:
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def build_request(args: CliArgs) -> CaptureRequest:
    """Merge the optional JSON body with the individual flags."""

    try:
        body: dict[str, Any] = dict(_read_json(args.request_path)) if args.request_path else {}
        if args.html_file:
            with open(args.html_file, encoding="utf-8") as fh:
                body["html"] = fh.read()
        if args.cookies_path:
            body["cookies"] = _read_json(args.cookies_path)
    except (OSError, ValueError, TypeError) as exc:
        raise CaptureValidationError(str(exc)) from exc

    overrides = {
        "url": args.url,
        "waitFor": args.wait,
        "trimColor": args.trim,
        "device": args.device,
        "evaluate": args.evaluate,
        "watermark": args.watermark,
    }
    body.update({k: v for k, v in overrides.items() if v is not None})
    return CaptureRequest.from_mapping(body)


def iter_manifest(path: str) -> Iterable[tuple[int, dict[str, Any] | None, str | None]]:
    """Yield ``(index, body, error)`` for each non-blank manifest line."""

    with open(path, encoding="utf-8") as fh:
        index = 0
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                body = json.loads(line)
                if not isinstance(body, dict):
                    raise ValueError("manifest entry must be a JSON object")
                yield index, body, None
            except ValueError as exc:
                yield index, None, str(exc)
            index += 1


_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def output_name(index: int, request_id: str | None) -> str:
    stem = _UNSAFE_NAME_RE.sub("_", request_id).strip("._") if request_id else ""
    return f"{stem or f'capture_{index:05d}'}.png"


# ============================
# Commands
# ============================


async def run_capture(args: CliArgs, pool: ContextPool) -> int:
    try:
        request = build_request(args)
    except CaptureValidationError as exc:
        jlog("error", event="invalid_request", error=str(exc))
        return EXIT_CLIENT_ERROR

    try:
        result = await capture_with_metadata(
            pool,
            request,
            wait_timeout_ms=args.wait_timeout_ms,
            page_timeout_ms=args.page_timeout_ms,
        )
    except Exception as exc:
        jlog("error", event="capture_failed", target=request.target, error=str(exc))
        return EXIT_SERVER_ERROR

    if args.output and args.output != "-":
        with open(args.output, "wb") as fh:
            fh.write(result.image)
    else:
        sys.stdout.buffer.write(result.image)
        sys.stdout.buffer.flush()
    return EXIT_OK


def run_extract(args: CliArgs) -> int:
    try:
        with open(args.image or "", "rb") as fh:
            data = fh.read()
    except OSError as exc:
        jlog("error", event="invalid_request", error=str(exc))
        return EXIT_CLIENT_ERROR
    print(json.dumps({"watermark": extract_watermark(data)}, ensure_ascii=False))
    return EXIT_OK


async def producer(queue: asyncio.Queue, args: CliArgs, results: list[dict[str, Any]]) -> None:
    for index, body, error in iter_manifest(args.manifest_path or ""):
        if body is None:
            results.append({"index": index, "status": "invalid", "error": error})
            continue
        await queue.put((index, body))
    for _ in range(args.concurrency):
        await queue.put(None)


async def consumer(
    queue: asyncio.Queue,
    pool: ContextPool,
    args: CliArgs,
    results: list[dict[str, Any]],
) -> None:
    """Worker loop: one capture at a time on pages from the shared pool."""
    while True:
        item = await queue.get()
        if item is None:
            queue.task_done()
            break
        index, body = item
        record: dict[str, Any] = {"index": index, "id": body.get("id")}
        try:
            request = CaptureRequest.from_mapping(body)
            with logging_context(manifest_index=index):
                result = await capture_with_metadata(
                    pool,
                    request,
                    wait_timeout_ms=args.wait_timeout_ms,
                    page_timeout_ms=args.page_timeout_ms,
                )
            path = os.path.join(args.output_dir or ".", output_name(index, request.request_id))
            with open(path, "wb") as fh:
                fh.write(result.image)
            record.update(status="done", output=path, sha256=result.sha256)
        except CaptureValidationError as exc:
            record.update(status="invalid", error=str(exc))
        except Exception as exc:
            jlog("error", event="capture_failed", manifest_index=index, error=str(exc))
            record.update(status="error", error=str(exc))
        results.append(record)
        queue.task_done()


async def run_batch(args: CliArgs, pool: ContextPool) -> int:
    os.makedirs(args.output_dir or ".", exist_ok=True)
    results: list[dict[str, Any]] = []
    queue: asyncio.Queue = asyncio.Queue(maxsize=args.concurrency * 2)
    workers = [asyncio.create_task(consumer(queue, pool, args, results)) for _ in range(args.concurrency)]
    try:
        await producer(queue, args, results)
        await asyncio.gather(*workers)
    except OSError as exc:
        jlog("error", event="manifest_unreadable", error=str(exc))
        return EXIT_CLIENT_ERROR
    finally:
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        results.sort(key=lambda r: r["index"])
        with open(os.path.join(args.output_dir or ".", RESULTS_FILE), "w", encoding="utf-8") as fh:
            for record in results:
                fh.write(json.dumps(record, ensure_ascii=False) + "\n")

    counts = {status: sum(1 for r in results if r["status"] == status) for status in ("done", "invalid", "error")}
    jlog("info", event="batch_summary", **counts)
    return EXIT_OK if counts["error"] == 0 else EXIT_SERVER_ERROR


# ============================
# Entrypoint
# ============================


def _install_signal_handlers() -> None:
    """Turn SIGTERM/SIGINT into cancellation of the running command."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    if task is None:
        return
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            pass


async def run(args: CliArgs, *, pool: ContextPool | None = None) -> int:
    """Execute one CLI command; the pool is always torn down before returning."""

    if args.command == "extract":
        return run_extract(args)

    if pool is None:
        pool = ContextPool(args.max_contexts)
    _install_signal_handlers()
    try:
        if args.command == "batch":
            return await run_batch(args, pool)
        return await run_capture(args, pool)
    except asyncio.CancelledError:
        jlog("warning", event="shutdown_requested", command=args.command)
        return EXIT_INTERRUPTED
    finally:
        await pool.teardown()


def main(argv: list[str] | None = None) -> None:
    configure_logging()
    set_global_context(app="page_snapshot")
    args = parse_args(argv)
    with logging_context(command=args.command):
        sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
