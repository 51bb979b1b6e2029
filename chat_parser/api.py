#!/usr/bin/env python3
"""
Chat Parser API - FastAPI endpoints for uploading and browsing chat logs.

- POST /api/upload    parse a .txt chat log and store its messages
- GET  /api/messages  list stored messages, optionally for one sender
- GET  /health        liveness probe
"""

import argparse
import logging
import os
from datetime import datetime, timezone
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from chat_parser.completion import CompletionClient, build_langfuse
from chat_parser.config import Settings, configure_logging, load_settings
from chat_parser.db import Database
from chat_parser.exceptions import ChatParserError, ConfigurationError, InvalidInputError
from chat_parser.extraction import ExtractionPipeline
from chat_parser.repository import get_messages, insert_messages

logger = logging.getLogger(__name__)

PipelineFactory = Callable[[Settings], ExtractionPipeline]


def default_pipeline_factory(settings: Settings) -> ExtractionPipeline:
    return ExtractionPipeline(
        client=CompletionClient.from_settings(settings),
        candidate_models=settings.candidate_models,
        max_chars=settings.max_content_chars,
        langfuse=build_langfuse(settings),
    )


def error_response(
    settings: Settings, status_code: int, message: str, exc: Optional[BaseException] = None
) -> JSONResponse:
    body = {"error": message}
    if exc is not None and not settings.is_production:
        body["details"] = repr(exc)
    return JSONResponse(status_code=status_code, content=body)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    pipeline_factory: PipelineFactory = default_pipeline_factory,
) -> FastAPI:
    settings = settings or load_settings()
    database = database or Database(settings.database_url)

    app = FastAPI(title="Chat Parser API")
    app.state.settings = settings
    app.state.database = database
    app.state.pipeline_factory = pipeline_factory
    app.state.pipeline = None

    @app.exception_handler(ChatParserError)
    async def handle_chat_parser_error(request: Request, exc: ChatParserError):
        status = 400 if isinstance(exc, InvalidInputError) else 500
        logger.error("Request to %s failed: %s", request.url.path, exc)
        return error_response(settings, status, str(exc), exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unexpected error on %s", request.url.path)
        return error_response(settings, 500, str(exc) or "Internal server error", exc)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/api/upload")
    async def upload_chat_log(file: Optional[UploadFile] = File(None)):
        """Parse an uploaded chat log and store the extracted messages."""
        if file is None or not file.filename:
            return error_response(settings, 400, "No file uploaded")

        if not file.filename.lower().endswith(".txt"):
            return error_response(settings, 400, "Only .txt files are allowed")

        raw = await file.read(settings.max_file_bytes + 1)
        if len(raw) > settings.max_file_bytes:
            return error_response(
                settings, 400,
                f"File too large. Maximum size is {settings.max_file_bytes} bytes",
            )

        content = raw.decode("utf-8", errors="replace")
        if not content.strip():
            return error_response(settings, 400, "File is empty")

        if settings.max_content_chars is not None and len(content) > settings.max_content_chars:
            return error_response(
                settings, 400,
                f"File content too long. Maximum is {settings.max_content_chars} characters",
            )

        # Configuration is checked only after the upload itself is valid, and
        # before any extraction (model or manual parser) starts.
        if not settings.openai_api_key:
            raise ConfigurationError("OpenAI API key not configured")
        if not database.configured:
            raise ConfigurationError("Database connection string not configured")

        if app.state.pipeline is None:
            # One pipeline per app, shared by all uploads.
            app.state.pipeline = app.state.pipeline_factory(settings)
        pipeline = app.state.pipeline
        result = await run_in_threadpool(pipeline.extract, content)
        stored = await run_in_threadpool(insert_messages, database, result.messages)

        logger.info("Stored %d messages from %s", len(stored), file.filename)
        return {
            "success": True,
            "message": f"Successfully processed {len(stored)} messages",
            "data": [m.to_dict() for m in stored],
            "fallback": result.fallback,
            "source": result.source,
        }

    @app.get("/api/messages")
    async def list_messages(sender: Optional[str] = None):
        """List stored messages, newest first."""
        if sender is not None and len(sender) > settings.max_sender_filter_length:
            return error_response(
                settings, 400,
                f"Sender filter must be at most {settings.max_sender_filter_length} characters",
            )
        if not database.configured:
            raise ConfigurationError("Database connection string not configured")

        messages = await run_in_threadpool(get_messages, database, sender or None)
        return {
            "success": True,
            "data": [m.to_dict() for m in messages],
            "count": len(messages),
        }

    return app


def main():
    parser = argparse.ArgumentParser(description="Chat Parser API Server")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"), help="Host to bind to")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")), help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    args = parser.parse_args()

    configure_logging()
    settings = load_settings()
    logger.info("Starting Chat Parser API on %s:%s", args.host, args.port)
    logger.info("OpenAI API: %s", "configured" if settings.openai_api_key else "not configured")
    logger.info("Database: %s", "configured" if settings.database_url else "not configured")
    logger.info("Candidate models: %s", ", ".join(settings.candidate_models))

    uvicorn.run(
        "chat_parser.api:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
