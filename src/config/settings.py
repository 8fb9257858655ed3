"""Application settings loaded from the environment."""

from typing import List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.sheets.auth import GOOGLE_TOKEN_URL
from src.sheets.client import SHEETS_BASE_URL


class Settings(BaseSettings):
    """Sheet credentials, flush policy and host identity defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Google Sheets
    google_sheet_id: str = Field(..., description="Spreadsheet ID from the sheet URL")
    google_access_token: SecretStr = Field(..., description="Bearer token for the Sheets API")
    google_refresh_token: Optional[SecretStr] = None
    google_client_id: Optional[str] = None
    google_client_secret: Optional[SecretStr] = None
    sheet_name: str = "Sheet1"
    store_timeout_seconds: float = Field(10.0, gt=0)
    sheets_base_url: str = SHEETS_BASE_URL
    token_url: str = GOOGLE_TOKEN_URL

    # Flush policy (0 disables)
    autosave_every_turns: int = Field(0, ge=0)
    autosave_interval_seconds: float = Field(0.0, ge=0)
    strict_identity: bool = False

    # Identity used when the host does not supply one
    mcp_user_email: str = ""
    mcp_user_id: str = ""
    mcp_permissions: str = Field("", description="Comma-separated permission names")

    log_level: str = "INFO"
    debug: bool = False

    @property
    def google_access_token_str(self) -> str:
        return self.google_access_token.get_secret_value()

    @property
    def google_refresh_token_str(self) -> Optional[str]:
        if self.google_refresh_token:
            return self.google_refresh_token.get_secret_value()
        return None

    @property
    def google_client_secret_str(self) -> Optional[str]:
        if self.google_client_secret:
            return self.google_client_secret.get_secret_value()
        return None

    @property
    def refresh_enabled(self) -> bool:
        return bool(
            self.google_refresh_token_str
            and self.google_client_id
            and self.google_client_secret_str
        )

    @property
    def mcp_permission_list(self) -> List[str]:
        return [p.strip() for p in self.mcp_permissions.split(",") if p.strip()]
