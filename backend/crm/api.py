# backend/crm/api.py
# Zoho connection routes (OAuth consent, callback, status) + campaign lists

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from core import HubError, get_logger, to_http_exception
from auth import require_admin
from .token_manager import token_manager
from .client import crm_client
from .campaigns import campaigns_client

logger = get_logger("Zoho OAuth")

router = APIRouter(prefix="/api", tags=["Zoho"])


@router.get("/zoho/connect")
async def connect(redirect_uri: str = None):
    """Send the browser to Zoho's consent screen"""
    try:
        url = token_manager.get_authorization_url(redirect_uri)
    except HubError as e:
        raise to_http_exception(e)
    return RedirectResponse(url, status_code=302)


@router.get("/zoho/callback")
async def callback(code: str = None, error: str = None):
    """
    Exchange the authorization code

    The refresh token is returned once; store it as ZOHO_REFRESH_TOKEN.
    """
    if error:
        raise HTTPException(status_code=400, detail=f"Zoho authorization failed: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    try:
        tokens = await token_manager.exchange_code_for_tokens(code)
    except HubError as e:
        logger.error(f"Code exchange failed: {e.message}")
        raise to_http_exception(e)

    logger.info("Authorization code exchanged; refresh token issued")
    return {
        "success": True,
        "refresh_token": tokens["refresh_token"],
        "expires_in": tokens["expires_in"],
        "message": "Set ZOHO_REFRESH_TOKEN to the refresh_token above and restart"
    }


@router.get("/zoho/status")
async def status():
    configured = token_manager.is_configured()
    result = {"configured": configured, "connected": False}
    if configured:
        check = await crm_client.test_connection()
        result["connected"] = check["success"]
        result["message"] = check["message"]
    else:
        result["message"] = "Zoho credentials not configured"
    return result


@router.get("/campaigns/lists")
async def campaign_lists(user: dict = Depends(require_admin)):
    """Mailing lists (for picking workflow list keys)"""
    try:
        return await campaigns_client.get_lists()
    except HubError as e:
        raise to_http_exception(e)
