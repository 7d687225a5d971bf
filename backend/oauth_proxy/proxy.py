# backend/oauth_proxy/proxy.py
# Forwards /oauth/* and /api/oauth/* to the standalone OAuth backend

from typing import Dict, Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core import settings, get_logger

logger = get_logger("OAuth Proxy")

PROXIED_PREFIXES = ("/oauth/", "/api/oauth/")
BODY_METHODS = ("POST", "PUT", "PATCH")
SKIPPED_RESPONSE_HEADERS = ("content-encoding", "transfer-encoding", "connection", "content-length")


def is_proxied_path(path: str) -> bool:
    return path.startswith(PROXIED_PREFIXES)


def forward_headers(request: Request) -> Dict[str, str]:
    headers = {
        "Content-Type": request.headers.get("content-type") or "application/json",
        "User-Agent": request.headers.get("user-agent") or "OAuth-Proxy/1.0",
        "Accept": request.headers.get("accept") or "*/*"
    }
    host = request.headers.get("host")
    if host:
        headers["X-Forwarded-Host"] = host
        headers["X-Original-Host"] = host
    authorization = request.headers.get("authorization")
    if authorization:
        headers["Authorization"] = authorization
    return headers


class OAuthProxyMiddleware(BaseHTTPMiddleware):
    """Pass-through forwarder; redirects are relayed, never followed"""

    def __init__(self, app, backend_url: Optional[str] = None, transport: httpx.AsyncBaseTransport = None):
        super().__init__(app)
        self.backend_url = (backend_url or settings.oauth_backend_url).rstrip("/")
        self.transport = transport

    async def dispatch(self, request: Request, call_next):
        if not is_proxied_path(request.url.path):
            return await call_next(request)
        return await self.forward(request)

    def target_url(self, request: Request) -> str:
        url = f"{self.backend_url}{request.url.path}"
        if request.url.query:
            url += f"?{request.url.query}"
        return url

    async def forward(self, request: Request) -> Response:
        target = self.target_url(request)
        logger.info(f"Forwarding {request.method} {request.url.path} -> {target}")

        body = await request.body() if request.method in BODY_METHODS else None
        try:
            async with httpx.AsyncClient(follow_redirects=False, timeout=30.0, transport=self.transport) as client:
                upstream = await client.request(
                    request.method, target,
                    headers=forward_headers(request),
                    content=body or None
                )
        except httpx.ConnectError as e:
            logger.error(f"Backend unreachable at {self.backend_url}: {e}")
            return JSONResponse(status_code=503, content={
                "error": "OAuth backend unavailable",
                "message": "The OAuth service is temporarily unavailable. Please try again later.",
                "backend": self.backend_url
            })
        except httpx.HTTPError as e:
            logger.error(f"Error forwarding request: {e}")
            return JSONResponse(status_code=500, content={
                "error": "Proxy error",
                "message": str(e) or e.__class__.__name__
            })

        logger.info(f"Backend responded: {upstream.status_code}")

        location = upstream.headers.get("location")
        if 300 <= upstream.status_code < 400 and location:
            logger.info(f"Redirecting to: {location}")
            return RedirectResponse(location, status_code=upstream.status_code)

        headers = {
            key: value for key, value in upstream.headers.items()
            if key.lower() not in SKIPPED_RESPONSE_HEADERS
        }
        return Response(content=upstream.content, status_code=upstream.status_code, headers=headers)
