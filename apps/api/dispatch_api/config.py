from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "dispatch-jwt-secret"
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Delivery Dispatch Service"

    database_url: str = Field(
        default="sqlite+pysqlite:///./test.db",
        validation_alias="DISPATCH_DATABASE_URL",
    )
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    jwt_secret: str = DEFAULT_JWT_SECRET
    allowed_roles: str = "CUSTOMER,CHEF,DRIVER,ADMIN"
    enable_test_auth_bypass: bool = False
    testing: bool = Field(default=False, validation_alias="DISPATCH_TESTING")
    auto_create_schema: bool = True
    require_migrations: bool = False

    base_fee: int = 500
    per_km_rate: int = 100
    min_distance_km: float = 0.5
    pickup_lead_min: int = 15
    minutes_per_km: int = 3
    min_duration_min: int = 30

    confirmation_code_length: int = 6
    code_max_attempts: int = 20

    auto_assign_radius_km: float = 15.0
    nearby_notify_radius_km: float = 10.0
    driver_offer_radius_km: float = 10.0
    pickup_proximity_m: float = 300.0
    geo_index_cell_deg: float = 0.1
    driver_track_max_points: int = 50

    notification_base_url: str = ""
    notification_timeout_s: float = 2.0
    notification_max_retries: int = 1
    notification_backoff_s: float = 0.2

    redis_url: str = ""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("geo_index_cell_deg")
    @classmethod
    def validate_cell_size(cls, value: float) -> float:
        if value <= 0 or value > 10:
            raise ValueError("geo_index_cell_deg must be in (0, 10]")
        return value

    @field_validator("confirmation_code_length", "code_max_attempts")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value


settings = Settings()


def allowed_origins() -> list[str]:
    origins = settings.cors_allowed_origins.split(",")
    return [origin.strip() for origin in origins if origin.strip()]


def allowed_roles_list() -> list[str]:
    return [value.strip() for value in settings.allowed_roles.split(",") if value.strip()]


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses insecure defaults."""
    if not settings.testing and settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when DISPATCH_TESTING is false"
        )
    if not settings.testing and len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            "JWT_SECRET must be at least "
            f"{MIN_SECRET_LENGTH} characters when DISPATCH_TESTING is false"
        )
    if not settings.testing and _is_sqlite_url(settings.database_url):
        raise RuntimeError(
            "DISPATCH_DATABASE_URL must use postgres when DISPATCH_TESTING is false"
        )


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
