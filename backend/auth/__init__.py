# backend/auth/__init__.py
# Admin auth module

from .middleware import (
    hash_password,
    verify_password,
    authenticate_user,
    create_jwt_token,
    decode_jwt_token,
    validate_automation_key,
    get_current_user,
    require_auth,
    require_admin,
    require_automation_key,
    check_rate_limit,
    contact_rate_limiter,
    RateLimiter,
    TokenPayload
)

__all__ = [
    "hash_password",
    "verify_password",
    "authenticate_user",
    "create_jwt_token",
    "decode_jwt_token",
    "validate_automation_key",
    "get_current_user",
    "require_auth",
    "require_admin",
    "require_automation_key",
    "check_rate_limit",
    "contact_rate_limiter",
    "RateLimiter",
    "TokenPayload"
]
