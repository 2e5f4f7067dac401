from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str
    password: str
    business_name: str = Field(alias="businessName")
    phone: str | None = None

    model_config = {"populate_by_name": True}


class RegisterResponse(BaseModel):
    success: bool
    message: str
    location_id: str
    user_id: str | None
