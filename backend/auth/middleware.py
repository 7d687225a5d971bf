# backend/auth/middleware.py
# Admin auth: JWT, scrypt passwords, automation API key, rate limiting

import time
import hashlib
import hmac
import secrets
from typing import Dict, Optional
from datetime import datetime, timedelta, timezone

from fastapi import Request, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials, APIKeyHeader, APIKeyQuery
import jwt
from pydantic import BaseModel

from core import settings, get_logger

logger = get_logger("Auth")

AUTOMATION_KEY_HEADER = "X-Automation-API-Key"
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 24

# scrypt parameters (N=16384, r=8, p=1, 64-byte key)
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_KEYLEN = 64


# Security schemes
bearer_scheme = HTTPBearer(auto_error=False)
automation_key_header = APIKeyHeader(name=AUTOMATION_KEY_HEADER, auto_error=False)
automation_key_query = APIKeyQuery(name="apiKey", auto_error=False)


class TokenPayload(BaseModel):
    """JWT payload"""
    sub: str  # username
    exp: int
    iat: int
    role: str = "admin"


# ─────────────────────────────────────────────────────────────────────────────
# Passwords
# ─────────────────────────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    """-> "<salt hex>:<key hex>" """
    salt = secrets.token_hex(16)
    key = hashlib.scrypt(
        password.encode(), salt=salt.encode(),
        n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P, dklen=SCRYPT_KEYLEN
    )
    return f"{salt}:{key.hex()}"


def verify_password(password: str, stored: str) -> bool:
    salt, sep, key_hex = stored.partition(":")
    if not sep:
        return False
    key = hashlib.scrypt(
        password.encode(), salt=salt.encode(),
        n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P, dklen=SCRYPT_KEYLEN
    )
    return hmac.compare_digest(key.hex(), key_hex)


# Back-office users (username -> scrypt hash); seeded from settings
USERS: Dict[str, Dict] = {}


def seed_admin_user():
    if settings.ADMIN_USERNAME not in USERS:
        USERS[settings.ADMIN_USERNAME] = {
            "password_hash": hash_password(settings.ADMIN_PASSWORD),
            "role": "admin"
        }


def authenticate_user(username: str, password: str) -> Optional[Dict]:
    seed_admin_user()
    user = USERS.get(username)
    if not user or not verify_password(password, user["password_hash"]):
        return None
    return {"username": username, "role": user["role"]}


# ─────────────────────────────────────────────────────────────────────────────
# JWT
# ─────────────────────────────────────────────────────────────────────────────

def create_jwt_token(username: str, role: str = "admin") -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": username,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=JWT_EXPIRY_HOURS)).timestamp()),
        "role": role
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_jwt_token(token: str) -> Optional[TokenPayload]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[JWT_ALGORITHM])
        return TokenPayload(**payload)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        return None


def validate_automation_key(api_key: Optional[str]) -> bool:
    if not api_key or not settings.AUTOMATION_API_KEY:
        return False
    return hmac.compare_digest(api_key, settings.AUTOMATION_API_KEY)


# ─────────────────────────────────────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────────────────────────────────────

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    header_key: str = Depends(automation_key_header),
    query_key: str = Depends(automation_key_query)
) -> Optional[dict]:
    """
    Resolve the caller

    Order:
    1. Bearer token (JWT)
    2. Automation key (X-Automation-API-Key header, then ?apiKey=)
    """
    if credentials:
        token_data = decode_jwt_token(credentials.credentials)
        if token_data:
            return {"type": "jwt", "username": token_data.sub, "role": token_data.role}

    if validate_automation_key(header_key or query_key):
        return {"type": "automation", "username": "automation", "role": "automation"}

    return None


async def require_auth(user: Optional[dict] = Depends(get_current_user)) -> dict:
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user


async def require_admin(user: dict = Depends(require_auth)) -> dict:
    """JWT admin or automation key"""
    if user.get("role") not in ("admin", "automation"):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_automation_key(
    header_key: str = Depends(automation_key_header),
    query_key: str = Depends(automation_key_query)
) -> dict:
    if not validate_automation_key(header_key or query_key):
        raise HTTPException(
            status_code=401,
            detail="Valid automation API key required. Set X-Automation-API-Key header or apiKey query param."
        )
    return {"type": "automation", "username": "automation", "role": "automation"}


# ─────────────────────────────────────────────────────────────────────────────
# Rate limiting
# ─────────────────────────────────────────────────────────────────────────────

class RateLimiter:
    """Sliding-window request counter per client"""

    def __init__(self, max_requests: int = 100, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests = {}  # {client_id: [timestamp, ...]}

    def _clean_old_requests(self, client_id: str):
        cutoff = time.time() - self.window_seconds
        if client_id in self.requests:
            self.requests[client_id] = [ts for ts in self.requests[client_id] if ts > cutoff]

    def is_allowed(self, client_id: str) -> bool:
        self._clean_old_requests(client_id)
        hits = self.requests.setdefault(client_id, [])
        if len(hits) >= self.max_requests:
            return False
        hits.append(time.time())
        return True

    def get_remaining(self, client_id: str) -> int:
        self._clean_old_requests(client_id)
        return max(0, self.max_requests - len(self.requests.get(client_id, [])))

    def reset(self):
        self.requests.clear()


# Contact form: CONTACT_RATE_LIMIT per IP per window
contact_rate_limiter = RateLimiter(
    max_requests=settings.CONTACT_RATE_LIMIT,
    window_seconds=settings.CONTACT_RATE_WINDOW_SECONDS
)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def check_rate_limit(limiter: RateLimiter):
    """Dependency factory: 429 once the caller's IP is over the limit"""
    async def checker(request: Request) -> None:
        ip = client_ip(request)
        if not limiter.is_allowed(ip):
            logger.warning(f"Rate limit exceeded for {ip}")
            raise HTTPException(
                status_code=429,
                detail="Too many submissions. Please try again later.",
                headers={
                    "X-RateLimit-Remaining": str(limiter.get_remaining(ip)),
                    "X-RateLimit-Reset": str(limiter.window_seconds)
                }
            )
    return checker
