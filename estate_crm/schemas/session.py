import time

from pydantic import BaseModel, field_validator


class SessionUser(BaseModel):
    id: str
    name: str | None = None
    email: str | None = None
    location_id: str | None = None
    client_id: str = ""

    # CRM ids sometimes arrive as numbers; they are always kept as strings
    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return "" if v is None else str(v)

    @field_validator("location_id", mode="before")
    @classmethod
    def _stringify_location(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @classmethod
    def from_userinfo(cls, data: dict, location_id: str | None = None, client_id: str = "") -> "SessionUser":
        return cls(
            id=data.get("id") or data.get("sub") or "",
            name=data.get("name"),
            email=data.get("email"),
            location_id=data.get("locationId") or location_id,
            client_id=str(data.get("client_id") or client_id),
        )


class TokenSet(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None

    @classmethod
    def from_response(cls, data: dict, now: float | None = None) -> "TokenSet":
        now = time.time() if now is None else now
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=now + float(expires_in) if expires_in else None,
        )


class Session(BaseModel):
    user: SessionUser
    tokens: TokenSet

    @property
    def is_expired(self) -> bool:
        expires_at = self.tokens.expires_at
        return expires_at is not None and expires_at <= time.time()
