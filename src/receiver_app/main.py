# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

"""
History receiver service.

Accepts batched browsing history from the browser extension, merges it into
per-day dump files and runs the remote sync command on request.
"""

import argparse
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from starlette.exceptions import HTTPException as StarletteHTTPException

from collector_library.config import CollectorSettings
from collector_library.config.defaults import API_KEY_HEADER_NAME
from collector_library.day_store import DayBucketStore
from collector_library.errors import InvalidPayloadError, StoreCorruptedError
from collector_library.push_coordinator import PushCoordinator
from receiver_app.api_key import keys_match, load_or_create_api_key, mask_api_key
from receiver_app.payloads import parse_history_upload, validate_source

api_key_header = APIKeyHeader(name=API_KEY_HEADER_NAME, auto_error=False)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# --- Dependencies ---
def get_push_coordinator(request: Request) -> PushCoordinator:
    """Dependency to get the push coordinator from the app state."""
    return request.app.state.push_coordinator


async def verify_api_key(request: Request, provided: str = Depends(api_key_header)):
    """Dependency to verify the static API key; runs before any body is read."""
    if not keys_match(provided, request.app.state.api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return provided


def get_history_store(
    request: Request, source: str, content_key: str
) -> DayBucketStore:
    stores: Dict[Tuple[str, str], DayBucketStore] = request.app.state.history_stores
    store = stores.get((source, content_key))
    if store is None:
        settings: CollectorSettings = request.app.state.settings
        store = DayBucketStore(settings.history_dir(source), content_key=content_key)
        stores[(source, content_key)] = store
    return store


# --- App Factory ---
def create_app(
    settings: CollectorSettings,
    api_key: Optional[str] = None,
    push_coordinator: Optional[PushCoordinator] = None,
) -> FastAPI:
    """Build the receiver app; directory creation failures abort startup."""
    settings.ensure_dirs()
    resolved_key = api_key or load_or_create_api_key(settings.api_key_file)
    coordinator = push_coordinator or PushCoordinator(
        settings.push_command,
        cwd=settings.root,
        retry_delay=settings.push_retry_delay,
        timeout=settings.push_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.info(f"History receiver ready. Saving to {settings.raw_dumps_dir}")
        yield
        if coordinator.is_pushing or coordinator.pending_push:
            logging.info("Waiting for in-flight push before shutdown...")
        await coordinator.wait_idle()
        logging.info("History receiver stopped.")

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.api_key = resolved_key
    app.state.push_coordinator = coordinator
    app.state.history_stores = {}

    # The browser extension calls from its own origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", API_KEY_HEADER_NAME],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.get("/health")
    async def health(
        coordinator: PushCoordinator = Depends(get_push_coordinator),
    ):
        return {
            "status": "ok",
            "timestamp": _now_iso(),
            "isPushing": coordinator.is_pushing,
        }

    @app.get("/ping")
    async def ping(_=Depends(verify_api_key)):
        return {
            "pong": True,
            "timestamp": _now_iso(),
            "message": "Connection successful! API key is valid.",
        }

    @app.post("/api/push")
    async def trigger_push(
        _=Depends(verify_api_key),
        coordinator: PushCoordinator = Depends(get_push_coordinator),
    ):
        result = await coordinator.request_push()
        return JSONResponse(
            status_code=200 if result.success else 500, content=result.to_dict()
        )

    @app.post("/api/{source}-history")
    async def receive_history(
        source: str,
        request: Request,
        _=Depends(verify_api_key),
    ):
        try:
            validate_source(source)
            upload = parse_history_upload(await request.body())
        except InvalidPayloadError as e:
            logging.warning(f"Rejected {source} history batch: {e}")
            return JSONResponse(
                status_code=400, content={"success": False, "error": str(e)}
            )

        logging.info(
            f"Received {upload.record_count} {source} records "
            f"(declared: {upload.declared_total}) at {_now_iso()}"
        )
        store = get_history_store(request, source, upload.content_key)

        # Days are committed one at a time; a failing day leaves earlier days saved
        saved_count = 0
        for day, records in upload.days.items():
            try:
                saved_count += await store.merge_day(day, records)
            except (StoreCorruptedError, OSError) as e:
                logging.error(f"Failed to merge {source} history for {day}: {e}")
                return JSONResponse(
                    status_code=500,
                    content={
                        "success": False,
                        "error": str(e),
                        "savedCount": saved_count,
                    },
                )

        return {
            "success": True,
            "message": f"Saved {saved_count} new records",
            "savedCount": saved_count,
        }

    return app


def print_banner(settings: CollectorSettings, api_key: str) -> None:
    from rich.console import Console
    from rich.panel import Panel

    body = "\n".join(
        [
            f"Listening on: http://{settings.host}:{settings.port}",
            f"Saving to:    {settings.raw_dumps_dir}",
            f"Push command: {' '.join(settings.push_command)}",
            "",
            f"API Key: {mask_api_key(api_key)}",
            f"(Full key in: {settings.api_key_file})",
            "",
            "Endpoints:",
            "  POST /api/<source>-history  - Receive & save history",
            "  POST /api/push              - Manually trigger remote sync",
            "  GET  /ping                  - Verify API key",
            "  GET  /health                - Health check (no auth needed)",
        ]
    )
    Console().print(Panel(body, title="History Receiver Server", expand=False))


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="History Receiver Server")
    parser.add_argument("--host", type=str, default=None, help="Host to bind the server to.")
    parser.add_argument("--port", type=int, default=None, help="Port to run the server on.")
    parser.add_argument(
        "--root", type=Path, default=None, help="Data root holding raw-dumps/, auth/, logs/."
    )
    args = parser.parse_args(argv)

    load_dotenv(Path.cwd() / ".env")
    settings = CollectorSettings.from_env(root=args.root)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port

    from receiver_app.logging_setup import configure_logging

    settings.ensure_dirs()
    configure_logging(settings.logs_dir)

    app = create_app(settings)
    print_banner(settings, app.state.api_key)

    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
