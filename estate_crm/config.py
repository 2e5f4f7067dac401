from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    # Go High Level OAuth / REST
    GHL_CLIENT_ID: str = ""
    GHL_CLIENT_SECRET: str = ""
    GHL_REDIRECT_URI: str = "http://localhost:3000/api/auth/callback/gohighlevel"
    GHL_SCOPE: str = (
        "contacts/readonly contacts/write locations/readonly "
        "opportunities/readonly opportunities/write pipelines/readonly"
    )
    GHL_AUTHORIZE_URL: str = "https://marketplace.gohighlevel.com/oauth/chooselocation"
    GHL_TOKEN_URL: str = "https://services.leadconnectorhq.com/oauth/token"
    GHL_USERINFO_URL: str = "https://services.leadconnectorhq.com/oauth/userinfo"
    GHL_API_V1_BASE_URL: str = "https://rest.gohighlevel.com/v1"
    GHL_API_V2_BASE_URL: str = "https://services.leadconnectorhq.com"
    GHL_API_VERSION: str = "2023-07-01"
    GHL_AGENCY_API_TOKEN: str = ""
    GHL_TIMEOUT_SECONDS: float = 15.0

    # Bright Data datasets API
    BRIGHT_DATA_API_KEY: str = ""
    BRIGHT_DATA_BASE_URL: str = "https://api.brightdata.com/datasets/v3"
    ZILLOW_DATASET_ID: str = "gd_lfqkr8wm13ixtbd8f5"
    ZILLOW_PRICE_HISTORY_DATASET_ID: str = "gd_lxu1cz9r88uiqsosl"
    TRIGGER_TIMEOUT_SECONDS: float = 15.0
    STATUS_TIMEOUT_SECONDS: float = 5.0
    RESULT_TIMEOUT_SECONDS: float = 10.0

    # Snapshot polling budget
    SEARCH_MAX_WAIT_SECONDS: float = 15.0
    SEARCH_POLL_INTERVAL_SECONDS: float = 1.0
    SEARCH_MAX_POLL_ATTEMPTS: int = 10
    SEARCH_RESULT_LIMIT: int = 3

    # Sessions
    SESSION_SECRET_KEY: str = "estate-crm-secret-key-change-in-production"
    SESSION_COOKIE_NAME: str = "ghl_session"
    SESSION_MAX_AGE: int = 30 * 24 * 60 * 60  # 30 days in seconds
    OAUTH_STATE_COOKIE_NAME: str = "ghl_oauth_state"
    OAUTH_STATE_MAX_AGE: int = 600
    COOKIE_SECURE: bool = False

    DEBUG: bool = False

    BASE_DIR: Path = Path(__file__).resolve().parent
    DATA_DIR: Path = BASE_DIR / "data"
    FALLBACK_LISTINGS_FILE: str = "fallback_listings.json"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def fallback_listings_path(self) -> Path:
        return self.DATA_DIR / self.FALLBACK_LISTINGS_FILE

    @property
    def bright_data_enabled(self) -> bool:
        return bool(self.BRIGHT_DATA_API_KEY)

    def missing_oauth_settings(self) -> list[str]:
        """Names of the OAuth settings that are still empty."""
        required = ("GHL_CLIENT_ID", "GHL_CLIENT_SECRET", "GHL_REDIRECT_URI")
        return [name for name in required if not getattr(self, name)]


settings = Settings()
