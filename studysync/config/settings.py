from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Only needed for admin auth operations

    # Storage
    storage_bucket: str = "studysync"
    storage_cache_control: str = "3600"
    max_upload_bytes: int = 10 * 1024 * 1024  # 10MB
    allowed_mime_types: str = (
        "application/pdf,image/jpeg,image/png,image/gif,application/msword,"
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    )

    # Realtime
    realtime_schema: str = "public"
    realtime_subscribe_timeout: float = 10.0  # seconds to wait for SUBSCRIBED

    # Groups
    default_group_capacity: int = 10
    enforce_group_capacity: bool = True

    # App
    app_name: str = "studysync"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_allowed_mime_types(self) -> List[str]:
        return [m.strip() for m in self.allowed_mime_types.split(",") if m.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )


settings = Settings()
