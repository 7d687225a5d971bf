# backend/auth/api.py
# Admin login API router

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .middleware import (
    authenticate_user,
    create_jwt_token,
    require_auth,
    JWT_EXPIRY_HOURS
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = JWT_EXPIRY_HOURS * 3600


@router.post("/login", response_model=TokenResponse)
async def login(req: LoginRequest):
    """
    Back-office login

    The admin account comes from ADMIN_USERNAME / ADMIN_PASSWORD.
    """
    user = authenticate_user(req.username, req.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return TokenResponse(access_token=create_jwt_token(user["username"], user["role"]))


@router.get("/me")
async def get_me(user: dict = Depends(require_auth)):
    """Current caller"""
    return {
        "authenticated": True,
        "auth_type": user.get("type"),
        "username": user.get("username"),
        "role": user.get("role")
    }


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(user: dict = Depends(require_auth)):
    if user.get("type") != "jwt":
        raise HTTPException(status_code=400, detail="Only JWT tokens can be refreshed")

    return TokenResponse(access_token=create_jwt_token(user["username"], user["role"]))
