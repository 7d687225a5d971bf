# backend/crm/__init__.py
# Zoho CRM + Campaigns clients

from .token_manager import ZohoTokenManager, token_manager
from .client import ZohoCRMClient, crm_client
from .campaigns import ZohoCampaignsClient, campaigns_client

__all__ = [
    "ZohoTokenManager",
    "token_manager",
    "ZohoCRMClient",
    "crm_client",
    "ZohoCampaignsClient",
    "campaigns_client"
]
