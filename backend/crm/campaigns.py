# backend/crm/campaigns.py
# Zoho Campaigns API client (mailing lists, subscribers, campaigns)

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from core import settings, get_logger, CRMError
from .token_manager import ZohoTokenManager, token_manager as default_token_manager

logger = get_logger("Zoho Campaigns")

_CONTACT_KEYS = {"email": "Contact Email", "firstName": "First Name", "lastName": "Last Name"}


def _contact_info(contact: Dict[str, Any]) -> Dict[str, Any]:
    """email/firstName/lastName -> Zoho labels; other keys pass through"""
    info = {"Contact Email": contact["email"]}
    for key, value in contact.items():
        if key == "email":
            continue
        if key in _CONTACT_KEYS:
            if value:
                info[_CONTACT_KEYS[key]] = value
        else:
            info[key] = value
    return info


class ZohoCampaignsClient:

    def __init__(
        self,
        tokens: ZohoTokenManager = None,
        base_url: str = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.tokens = tokens or default_token_manager
        self.base_url = (base_url or settings.ZOHO_CAMPAIGNS_URL).rstrip("/")
        self.transport = transport

    async def _request(self, method: str, endpoint: str, body: Dict = None, params: Dict = None) -> Any:
        token = await self.tokens.get_valid_access_token()
        url = f"{self.base_url}{endpoint}"
        headers = {
            "Authorization": f"Zoho-oauthtoken {token}",
            "Content-Type": "application/json"
        }
        logger.info(f"{method} {url}")

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
                response = await client.request(method, url, headers=headers, json=body, params=params)
        except httpx.HTTPError as e:
            raise CRMError(f"Zoho Campaigns request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"API error ({response.status_code}): {response.text}")
            raise CRMError(
                f"Zoho Campaigns API error: {response.status_code} - {response.text}",
                upstream_status=response.status_code,
                payload=response.text
            )
        return response.json() if response.content else {}

    # Lists

    async def get_lists(self) -> Dict:
        return await self._request("GET", "/getmailinglists")

    async def get_list(self, list_key: str) -> Dict:
        return await self._request("GET", "/getlistdetails", params={"listkey": list_key})

    async def create_list(self, list_name: str, **extra) -> Dict:
        return await self._request("POST", "/createmailinglist", body={"listname": list_name, **extra})

    # Subscribers

    async def add_subscriber(self, list_key: str, contact: Dict[str, Any]) -> Dict:
        return await self._request("POST", "/json/listsubscribe", body={
            "listkey": list_key,
            "contactinfo": _contact_info(contact)
        })

    async def add_subscribers_bulk(self, list_key: str, contacts: List[Dict[str, Any]]) -> Dict:
        rows = [_contact_info(c) for c in contacts]
        return await self._request("POST", "/json/listsubscribe", body={
            "listkey": list_key,
            "jsondata": json.dumps(rows)
        })

    async def get_subscribers(self, list_key: str, page: int = 1, limit: int = 100) -> Dict:
        return await self._request("GET", "/listsubscribers", params={
            "listkey": list_key, "page": page, "limit": limit
        })

    async def unsubscribe(self, list_key: str, email: str) -> Dict:
        return await self._request("POST", "/json/listunsubscribe", body={
            "listkey": list_key,
            "contactinfo": {"Contact Email": email}
        })

    # Campaigns

    async def get_campaigns(self) -> Dict:
        return await self._request("GET", "/campaigns")

    async def get_campaign(self, campaign_key: str) -> Dict:
        return await self._request("GET", "/getcampaigndetails", params={"campaignkey": campaign_key})

    async def create_email_campaign(
        self,
        campaign_name: str,
        subject: str,
        from_email: str,
        list_key: str,
        html_content: Optional[str] = None,
        **extra
    ) -> Dict:
        body = {
            "campaign_name": campaign_name,
            "subject": subject,
            "from_email": from_email,
            "listkey": list_key,
            **extra
        }
        if html_content:
            body["html_content"] = html_content
        return await self._request("POST", "/createcampaign", body=body)

    async def send_campaign(self, campaign_key: str, schedule_time: Optional[datetime] = None) -> Dict:
        body = {"campaignkey": campaign_key}
        if schedule_time:
            body["schedule_time"] = schedule_time.isoformat()
        return await self._request("POST", "/sendcampaign", body=body)

    async def schedule_campaign(self, campaign_key: str, schedule_time: datetime) -> Dict:
        return await self._request("POST", "/schedulecampaign", body={
            "campaignkey": campaign_key,
            "schedule_time": schedule_time.isoformat()
        })

    async def get_campaign_stats(self, campaign_key: str) -> Dict:
        return await self._request("GET", "/getcampaignstats", params={"campaignkey": campaign_key})


# Global instance
campaigns_client = ZohoCampaignsClient()
