# backend/main.py
# CAS Integration Hub API - website forms, Zoho CRM/Campaigns, workflow automation

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from core import settings, get_logger
from core.log import configure_logging
from forms.config_engine import form_config_engine
from oauth_proxy import OAuthProxyMiddleware

# Routers
from auth.api import router as auth_router
from forms.api import router as forms_router
from workflows.api import router as workflows_router
from crm.api import router as zoho_router
from bulk_import.api import router as import_router
from directory.api import router as directory_router

logger = get_logger("Server")

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    logger.info(f"CAS Integration Hub starting ({settings.ENVIRONMENT})")
    logger.info(f"  - Zoho: {'configured' if settings.zoho_configured() else 'not configured'}")
    logger.info(f"  - OAuth proxy: {'-> ' + settings.oauth_backend_url if settings.OAUTH_PROXY_ENABLED else 'off'}")
    form_config_engine.initialize()
    yield
    logger.info("CAS Integration Hub stopped")


app = FastAPI(
    title="CAS Integration Hub",
    description="""
## CAS Integration Hub

### Features
- **Forms**: config-driven website form submissions -> Zoho CRM, with retries
- **Public forms**: contact (rate limited), newsletter, membership
- **Workflows**: trigger -> conditions -> actions automation (Zoho CRM + Campaigns)
- **Import**: historical CANN / CAS spreadsheet import
- **Directory**: amyloidosis healthcare centers

### Auth
- Bearer Token (JWT): `Authorization: Bearer <token>`
- Automation key: `X-Automation-API-Key: <key>` or `?apiKey=<key>`
    """,
    version=VERSION,
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.OAUTH_PROXY_ENABLED:
    app.add_middleware(OAuthProxyMiddleware)

app.include_router(auth_router)
app.include_router(forms_router)
app.include_router(workflows_router)
app.include_router(zoho_router)
app.include_router(import_router)
app.include_router(directory_router)


@app.get("/")
async def root():
    """API info"""
    return {
        "name": "CAS Integration Hub",
        "version": VERSION,
        "endpoints": {
            "auth": ["/auth/login", "/auth/me", "/auth/refresh"],
            "forms": [
                "/api/forms/submit",
                "/api/forms/submissions",
                "/api/forms/retry-all",
                "/api/forms/retry-stats",
                "/api/forms/configs"
            ],
            "public": ["/api/contact", "/api/newsletter", "/api/membership"],
            "workflows": [
                "/api/workflows",
                "/api/workflows/from-template",
                "/api/workflows/{id}/execute",
                "/api/workflows/trigger/{trigger_type}",
                "/api/workflow-templates"
            ],
            "zoho": ["/api/zoho/connect", "/api/zoho/callback", "/api/zoho/status", "/api/campaigns/lists"],
            "import": ["/api/import/{data_source}"],
            "directory": ["/api/healthcare-centers", "/api/healthcare-centers/{id}"]
        }
    }


@app.get("/health")
async def health():
    """Health check"""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "services": {
            "zoho": "configured" if settings.zoho_configured() else "not_configured",
            "form_configs": "ok" if form_config_engine.initialized else "not_loaded",
            "oauth_proxy": "on" if settings.OAUTH_PROXY_ENABLED else "off"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
