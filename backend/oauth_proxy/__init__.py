# backend/oauth_proxy/__init__.py
# OAuth pass-through proxy

from .proxy import OAuthProxyMiddleware, is_proxied_path, forward_headers

__all__ = ["OAuthProxyMiddleware", "is_proxied_path", "forward_headers"]
