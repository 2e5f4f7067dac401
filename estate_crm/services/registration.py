import logging
from dataclasses import dataclass

from estate_crm.schemas.auth import RegisterRequest
from estate_crm.schemas.session import Session, SessionUser, TokenSet
from estate_crm.services.ghl import GHLAgencyClient, GHLApiError

logger = logging.getLogger(__name__)

USER_PERMISSIONS = {
    "contactsEnabled": True,
    "workflowsEnabled": True,
    "dashboardStatsEnabled": True,
    "bulkRequestsEnabled": True,
    "appointmentsEnabled": True,
    "reviewsEnabled": True,
    "onlineListingsEnabled": True,
    "phoneCallEnabled": True,
    "conversationsEnabled": True,
    "settingsEnabled": True,
    "tagsEnabled": True,
    "leadValueEnabled": True,
    "marketingEnabled": True,
}


@dataclass
class Registration:
    location_id: str
    user_id: str | None
    session: Session


def _location_payload(req: RegisterRequest) -> dict:
    return {
        "businessName": req.business_name,
        "address": "",
        "city": "",
        "state": "",
        "country": "US",
        "postalCode": "",
        "website": "",
        "timezone": "US/Central",
        "firstName": req.first_name,
        "lastName": req.last_name,
        "email": req.email,
        "phone": req.phone,
        "settings": {
            "allowDuplicateContact": False,
            "allowDuplicateOpportunity": False,
            "allowFacebookNameMerge": False,
            "disableContactTimezone": False,
        },
    }


def _user_payload(req: RegisterRequest, location_id: str) -> dict:
    return {
        "firstName": req.first_name,
        "lastName": req.last_name,
        "email": req.email,
        "password": req.password,
        "type": "account",
        "role": "admin",
        "locationIds": [location_id],
        "permissions": USER_PERMISSIONS,
    }


async def register_account(agency: GHLAgencyClient, req: RegisterRequest, client_id: str = "") -> Registration:
    """Create a sub-account and its admin user.

    The location is deleted again if the user cannot be created.
    """
    logger.info(f"[Register] Creating location for {req.business_name!r}")
    location = await agency.create_location(_location_payload(req))
    location_id = location.get("id")
    if not location_id:
        raise GHLApiError("No location ID returned from API")
    location_id = str(location_id)
    logger.info(f"[Register] Location created: {location_id}")

    try:
        user = await agency.create_user(_user_payload(req, location_id))
    except GHLApiError:
        try:
            await agency.delete_location(location_id)
            logger.info(f"[Register] Cleaned up location {location_id} after user creation failure")
        except GHLApiError as cleanup_error:
            logger.error(f"[Register] Failed to clean up location {location_id}: {cleanup_error}")
        raise

    user_id = str(user["id"]) if user.get("id") else None
    logger.info(f"[Register] User created: {user_id}")

    # New sub-accounts authenticate with the location API key until they go through OAuth
    session = Session(
        user=SessionUser(
            id=user_id or "",
            name=f"{req.first_name} {req.last_name}",
            email=req.email,
            location_id=location_id,
            client_id=client_id,
        ),
        tokens=TokenSet(access_token=location.get("apiKey") or ""),
    )
    return Registration(location_id=location_id, user_id=user_id, session=session)
