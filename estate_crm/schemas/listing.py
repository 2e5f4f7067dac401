from pydantic import BaseModel, Field


class ListingRecord(BaseModel):
    zpid: str
    address: str
    city: str
    state: str
    zipcode: str
    price: float = 0
    bedrooms: float = 0
    bathrooms: float = 0
    living_area: float = 0
    home_type: str
    home_status: str
    days_on_zillow: int = 0
    image_url: str
    detail_url: str

    model_config = {"frozen": True}


class ZillowSearchRequest(BaseModel):
    location: str = "Miami, FL"
    home_type: str = Field("Houses", alias="homeType")
    listing_category: str = Field("House for sale", alias="listingCategory")
    days_on_zillow: str = Field("", alias="daysOnZillow")
    min_price: float = Field(1, alias="minPrice")
    max_price: float = Field(10_000_000, alias="maxPrice")
    property_url: str | None = Field(None, alias="propertyUrl")

    model_config = {"populate_by_name": True}


class ListingSearchResponse(BaseModel):
    success: bool
    listings: list[ListingRecord] = []
    total: int = 0
    used_fallback: bool
    elapsed_ms: int
    error: str | None = None


class BatchSearchRequest(BaseModel):
    searches: list[ZillowSearchRequest]


class SnapshotCreateResponse(BaseModel):
    snapshot_id: str


class SnapshotStatusResponse(BaseModel):
    snapshot_id: str
    status: str
    records: int | None = None
    errors: int | None = None
    error_codes: dict[str, int] | None = None
