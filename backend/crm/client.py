# backend/crm/client.py
# Zoho CRM v2 REST client + field helpers

import re
from typing import Any, Dict, List, Optional

import httpx

from core import settings, get_logger, CRMError, HubError
from .token_manager import ZohoTokenManager, token_manager as default_token_manager

logger = get_logger("Zoho API")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-\(\)]{10,}$")
BOOLEAN_LITERALS = ("yes", "no", "true", "false")


class ZohoCRMClient:
    """Records + field metadata for one Zoho org"""

    def __init__(
        self,
        tokens: ZohoTokenManager = None,
        base_url: str = None,
        org_id: str = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.tokens = tokens or default_token_manager
        self.base_url = (base_url or settings.ZOHO_API_BASE_URL).rstrip("/")
        self.org_id = org_id if org_id is not None else settings.ZOHO_ORG_ID
        self.transport = transport

        if not self.org_id:
            logger.warning("ZOHO_ORG_ID not configured")

    async def _headers(self) -> Dict[str, str]:
        token = await self.tokens.get_valid_access_token()
        headers = {
            "Authorization": f"Zoho-oauthtoken {token}",
            "Content-Type": "application/json"
        }
        if self.org_id:
            headers["orgId"] = self.org_id
        return headers

    async def _request(self, method: str, endpoint: str, json: Any = None, params: Dict = None) -> Dict:
        url = f"{self.base_url}{endpoint}"
        headers = await self._headers()
        logger.info(f"{method} {url}")

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
                response = await client.request(method, url, headers=headers, json=json, params=params)
        except httpx.HTTPError as e:
            raise CRMError(f"Zoho request failed: {e}") from e

        if response.status_code == 204 or not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}

        if response.status_code >= 400:
            message = payload.get("message", "Unknown error") if isinstance(payload, dict) else "Unknown error"
            logger.error(f"Zoho API error {response.status_code}: {message}")
            raise CRMError(
                f"Zoho API Error {response.status_code}: {message}",
                upstream_status=response.status_code,
                payload=payload
            )
        return payload

    # ─────────────────────────────────────────────────────────────────────
    # Records
    # ─────────────────────────────────────────────────────────────────────

    async def create_record(self, module: str, record: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", f"/{module}", json={"data": [record]})
        result = _first(response, "create record")
        _raise_on_row_error(result)
        return {**result, "id": (result.get("details") or {}).get("id", result.get("id"))}

    async def update_record(self, module: str, record_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("PUT", f"/{module}/{record_id}", json={"data": [record]})
        result = _first(response, "update record")
        _raise_on_row_error(result)
        return result

    async def get_record(self, module: str, record_id: str) -> Optional[Dict[str, Any]]:
        response = await self._request("GET", f"/{module}/{record_id}")
        data = response.get("data") or []
        return data[0] if data else None

    async def search_records(self, module: str, criteria: str = None, email: str = None) -> List[Dict[str, Any]]:
        """Search by criteria string ("(Email:equals:x)") or by email"""
        params = {}
        if criteria:
            params["criteria"] = criteria
        if email:
            params["email"] = email
        response = await self._request("GET", f"/{module}/search", params=params)
        return response.get("data") or []

    async def upsert_record(
        self,
        module: str,
        record: Dict[str, Any],
        duplicate_check_fields: List[str] = None
    ) -> Dict[str, Any]:
        body = {"data": [record]}
        if duplicate_check_fields:
            body["duplicate_check_fields"] = duplicate_check_fields
        response = await self._request("POST", f"/{module}/upsert", json=body)
        result = _first(response, "upsert record")
        _raise_on_row_error(result)
        return {**result, "id": (result.get("details") or {}).get("id")}

    # ─────────────────────────────────────────────────────────────────────
    # Field metadata
    # ─────────────────────────────────────────────────────────────────────

    async def get_module_fields(self, module: str) -> List[Dict[str, Any]]:
        response = await self._request("GET", "/settings/fields", params={"module": module})
        return response.get("fields") or response.get("data") or []

    async def create_custom_field(self, module: str, field: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            "POST", "/settings/fields",
            json={"fields": [field]},
            params={"module": module}
        )
        data = response.get("fields") or response.get("data") or []
        if not data:
            raise CRMError("Failed to create field - no data returned", payload=response)
        return data[0]

    async def test_connection(self) -> Dict[str, Any]:
        try:
            await self._request("GET", "/users", params={"type": "CurrentUser"})
            return {"success": True, "message": "Successfully connected to Zoho CRM"}
        except (HubError, httpx.HTTPError) as e:
            logger.error(f"Connection test failed: {e}")
            return {"success": False, "message": f"Failed to connect to Zoho CRM: {e}"}


def _first(response: Dict, action: str) -> Dict[str, Any]:
    data = response.get("data") or []
    if not data:
        raise CRMError(f"Failed to {action} - no data returned", payload=response)
    return data[0]


def _raise_on_row_error(row: Dict[str, Any]):
    # Zoho reports per-row failures with HTTP 2xx
    if row.get("status") == "error":
        raise CRMError(
            f"Zoho rejected record: {row.get('code')} {row.get('message', '')}".strip(),
            payload=row
        )


# ─────────────────────────────────────────────────────────────────────────────
# Field helpers
# ─────────────────────────────────────────────────────────────────────────────

def detect_field_type(value: Any, field_name: str) -> str:
    if isinstance(value, str) and EMAIL_RE.match(value):
        return "email"
    if isinstance(value, str) and PHONE_RE.match(value):
        return "phone"
    if isinstance(value, bool) or (isinstance(value, str) and value.lower() in BOOLEAN_LITERALS):
        return "boolean"
    if isinstance(value, (list, tuple)):
        return "multiselectpicklist"

    lower = field_name.lower()
    if "email" in lower:
        return "email"
    if "phone" in lower or "tel" in lower:
        return "phone"
    if "consent" in lower or "agree" in lower:
        return "boolean"
    return "text"


def convert_to_zoho_field_name(form_field_name: str) -> str:
    """"Areas of interest!" -> "areasOfInterest" """
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", "", form_field_name)
    words = [w for w in cleaned.split() if w]
    return "".join(
        w.lower() if i == 0 else w[:1].upper() + w[1:].lower()
        for i, w in enumerate(words)
    )


def convert_to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ("yes", "true", "1")
    return bool(value)


def format_field_data(form_data: Dict[str, Any], field_mappings: List[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Coerce values by known or detected type; unmapped names get camelCased"""
    lookup = {m["field_name"]: m for m in (field_mappings or [])}
    result = {}

    for name, value in form_data.items():
        mapping = lookup.get(name)
        if mapping:
            key, field_type = name, mapping.get("field_type")
        else:
            key, field_type = convert_to_zoho_field_name(name), detect_field_type(value, name)

        if field_type == "boolean":
            result[key] = convert_to_boolean(value)
        elif field_type == "multiselectpicklist" and isinstance(value, (list, tuple)):
            result[key] = ";".join(str(v) for v in value)
        else:
            result[key] = value

    return result


def generate_picklist_values(values: List[str]) -> List[Dict[str, str]]:
    return [{"display_value": v, "actual_value": v} for v in values]


# Global instance
crm_client = ZohoCRMClient()
