import logging
import re
import time

from fastapi import Request

logger = logging.getLogger("linkvault.access")

TOKEN_IN_PATH = re.compile(r"[0-9a-f]{32}")


def _mask_tokens(path: str) -> str:
    return TOKEN_IN_PATH.sub(lambda match: match.group(0)[:6] + "...", path)


class AccessLogMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        started = time.perf_counter()
        status_code = 500

        async def send_with_status(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(f"{request.method} {_mask_tokens(request.url.path)} {status_code} {elapsed_ms:.1f}ms")
