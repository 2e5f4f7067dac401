import logging

import httpx

from estate_crm.config import Settings

logger = logging.getLogger(__name__)


class GHLApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


async def _send(http: httpx.AsyncClient, method: str, url: str, action: str, **kwargs):
    try:
        resp = await http.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise GHLApiError(f"Failed to {action}: {e}") from e

    if resp.status_code >= 400:
        logger.warning(f"[GHL] {method} {url} -> {resp.status_code}: {resp.text[:200]}")
        raise GHLApiError(
            f"Failed to {action}: {resp.status_code}",
            status_code=resp.status_code,
            body=resp.text[:500],
        )
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError as e:
        raise GHLApiError(f"Failed to {action}: response was not JSON", status_code=resp.status_code) from e


class GHLClient:
    """Go High Level API v2 calls made on behalf of a signed-in user."""

    def __init__(self, access_token: str, settings: Settings, http: httpx.AsyncClient):
        self.access_token = access_token
        self.settings = settings
        self.http = http
        self.base_url = settings.GHL_API_V2_BASE_URL

    def _headers(self, versioned: bool = True) -> dict:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        if versioned:
            headers["Version"] = self.settings.GHL_API_VERSION
            headers["Content-Type"] = "application/json"
        return headers

    async def _request(self, method: str, path: str, action: str, versioned: bool = True, **kwargs):
        return await _send(
            self.http,
            method,
            f"{self.base_url}{path}",
            action,
            headers=self._headers(versioned),
            timeout=self.settings.GHL_TIMEOUT_SECONDS,
            **kwargs,
        )

    # Locations

    async def get_locations(self) -> list[dict]:
        data = await self._request("GET", "/locations/v1", "fetch locations")
        return data.get("locations", [])

    async def get_location(self, location_id: str) -> dict:
        return await self._request("GET", f"/locations/v1/{location_id}", "fetch location details")

    async def create_location(self, location_data: dict) -> dict:
        return await self._request("POST", "/locations/v1", "create location", json=location_data)

    # Contacts

    async def get_contacts(self, location_id: str) -> list[dict]:
        data = await self._request(
            "GET", "/contacts/v1", "fetch contacts", params={"locationId": location_id}
        )
        return data.get("contacts", [])

    # Pipelines / opportunities

    async def get_pipelines(self, location_id: str) -> list[dict]:
        data = await self._request(
            "GET", "/pipelines/v1", "fetch pipelines", params={"locationId": location_id}
        )
        return data.get("pipelines", [])

    async def get_opportunities(self, pipeline_id: str) -> list[dict]:
        data = await self._request(
            "GET", "/opportunities/v1", "fetch opportunities", params={"pipelineId": pipeline_id}
        )
        return data.get("opportunities", [])

    async def create_opportunity(self, opportunity_data: dict) -> dict:
        return await self._request("POST", "/opportunities/v1", "create opportunity", json=opportunity_data)

    # User

    async def get_user_info(self) -> dict:
        return await self._request("GET", "/oauth/user", "fetch user info", versioned=False)


class GHLAgencyClient:
    """API v1 calls authorized by the agency token (account provisioning)."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient):
        self.settings = settings
        self.http = http
        self.base_url = settings.GHL_API_V1_BASE_URL

    @property
    def configured(self) -> bool:
        return bool(self.settings.GHL_AGENCY_API_TOKEN)

    async def _request(self, method: str, path: str, action: str, **kwargs):
        return await _send(
            self.http,
            method,
            f"{self.base_url}{path}",
            action,
            headers={
                "Authorization": f"Bearer {self.settings.GHL_AGENCY_API_TOKEN}",
                "Content-Type": "application/json",
            },
            timeout=self.settings.GHL_TIMEOUT_SECONDS,
            **kwargs,
        )

    async def create_location(self, location_data: dict) -> dict:
        return await self._request("POST", "/locations", "create location", json=location_data)

    async def create_user(self, user_data: dict) -> dict:
        return await self._request("POST", "/users/", "create user account", json=user_data)

    async def delete_location(self, location_id: str):
        await self._request("DELETE", f"/locations/{location_id}", "delete location")
