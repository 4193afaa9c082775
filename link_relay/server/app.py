"""Webhook service facade with a minimal ASGI HTTP layer."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Mapping

from dotenv import load_dotenv

from link_relay.server.monday_auth import MondayAuth, load_monday_auth_from_env, verify_signature
from link_relay.server.monday_connector import MondayClient, build_client_from_env
from link_relay.server.webhook_handler import EventOutcome, WebhookHandler
from link_relay.shared.logging import configure_logging
from link_relay.shared.settings import RelaySettings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = b"x-monday-signature"


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class ServerApp:
    """Thin callable facade over the webhook handler."""

    def __init__(
        self,
        settings: RelaySettings | None = None,
        auth: MondayAuth | None = None,
        client: MondayClient | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.settings = settings or RelaySettings.from_env(env)
        self.auth = auth or load_monday_auth_from_env(env)
        self.client = client or build_client_from_env(self.settings, env=env, auth=self.auth)
        self.handler = WebhookHandler(client=self.client, settings=self.settings)

    def health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "dry_run": self.settings.dry_run,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def verify(self, body: bytes, signature: str | None) -> bool:
        return verify_signature(self.auth.signing_secret, body, signature)

    def process_event(self, payload: Any, request_id: str = "") -> EventOutcome:
        return self.handler.handle(payload, request_id=request_id or generate_request_id())


class ASGIServer:
    """Minimal ASGI adapter exposing the health and webhook routes."""

    def __init__(self, service: ServerApp | None = None) -> None:
        self._service = service

    @property
    def service(self) -> ServerApp:
        if self._service is None:
            self._service = create_app()
        return self._service

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope.get("type") == "lifespan":
            await self._lifespan(receive, send)
            return
        if scope.get("type") != "http":
            await self._send_json(send, 500, {"error": "unsupported_scope"})
            return

        method = scope.get("method", "GET")
        path = scope.get("path", "")
        body = await self._read_body(receive)
        if body is None:
            logger.info("Client disconnected before the request body was read")
            return

        if method == "GET" and path == "/health":
            await self._send_json(send, 200, self.service.health())
            return

        if method == "POST" and path == "/webhook":
            await self._handle_webhook(scope, body, send)
            return

        await self._send_json(send, 404, {"error": "not_found"})

    async def _handle_webhook(self, scope: dict[str, Any], body: bytes, send: Any) -> None:
        request_id = generate_request_id()
        signature = self._header(scope, SIGNATURE_HEADER)
        logger.info(
            "Incoming webhook request",
            extra={
                "request_id": request_id,
                "content_type": self._header(scope, b"content-type"),
                "has_signature": signature is not None,
            },
        )

        if not self.service.verify(body, signature):
            logger.warning("Invalid webhook signature", extra={"request_id": request_id})
            await self._send_json(send, 401, {"error": "invalid_signature"})
            return

        payload = self._parse_json(body)
        if payload is None:
            await self._send_json(send, 400, {"error": "invalid_json", "request_id": request_id})
            return

        try:
            outcome = await asyncio.to_thread(self.service.process_event, payload, request_id)
        except Exception as exc:
            logger.exception(
                "Error processing webhook",
                extra={"request_id": request_id, "error": str(exc)},
            )
            await self._send_json(
                send,
                500,
                {"success": False, "message": "Internal server error", "request_id": request_id},
            )
            return

        await self._send_json(send, 200, outcome.as_dict())

    async def _lifespan(self, receive: Any, send: Any) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                settings = self.service.settings
                logger.info(
                    "Server started",
                    extra={
                        "dry_run": settings.dry_run,
                        "subitem_board": settings.boards.subitem,
                        "feature_board": settings.boards.feature,
                        "main_board": settings.boards.main,
                    },
                )
                if settings.dry_run:
                    logger.warning("DRY-RUN MODE ENABLED - No changes will be applied")
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    def _header(self, scope: dict[str, Any], name: bytes) -> str | None:
        for key, value in scope.get("headers") or []:
            if key.lower() == name:
                return value.decode("latin-1")
        return None

    async def _read_body(self, receive: Any) -> bytes | None:
        chunks: list[bytes] = []
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return None
            if message["type"] != "http.request":
                continue
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        return b"".join(chunks)

    def _parse_json(self, body: bytes) -> dict[str, Any] | None:
        if not body:
            return None
        try:
            parsed = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        if not isinstance(parsed, dict):
            return None
        return parsed

    async def _send_json(self, send: Any, status: int, payload: dict[str, Any]) -> None:
        body = json.dumps(payload).encode("utf-8")
        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [(b"content-type", b"application/json")],
            }
        )
        await send({"type": "http.response.body", "body": body})


def create_app(env: Mapping[str, str] | None = None) -> ServerApp:
    if env is None:
        load_dotenv()
    settings = RelaySettings.from_env(env)
    auth = load_monday_auth_from_env(env)
    if settings.client_kind == "api":
        auth.require_token()
    configure_logging(settings.log_level)
    return ServerApp(settings=settings, auth=auth, env=env)


app = ASGIServer()


def main() -> int:
    parser = argparse.ArgumentParser(description="link-relay ASGI server entrypoint")
    parser.add_argument(
        "--print-startup",
        action="store_true",
        help="print the supported uvicorn startup command and exit",
    )
    args = parser.parse_args()

    if args.print_startup:
        port = RelaySettings.from_env().port
        print(f"uvicorn link_relay.server.app:app --host 0.0.0.0 --port {port}")
        return 0

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
