from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./costagolf.db"

    timezone: str = "Europe/Madrid"
    public_base_url: str = "http://localhost:8000"

    hold_ttl_minutes: int = 15
    checkout_hold_ttl_minutes: int = 30
    hold_sweep_interval_seconds: int = 300
    terminal_hold_retention_hours: int = 24

    price_ttl_minutes: int = 30
    price_sweep_interval_seconds: int = 600

    default_kickback_percent: float = 20.0

    golfmanager_api_key: str = ""
    golfmanager_base_url: str = "https://eu.golfmanager.com/api"
    golfmanager_v3_base_url: str = "https://eu.golfmanager.com/api/v3"
    provider_timeout_seconds: float = 10.0

    teeone_base_url: str = "https://devapi.teeone.golf/MGClubApp/v1"

    zest_golf_username: str = ""
    zest_golf_password: str = ""
    zest_golf_sandbox: bool = False

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_success_url: str = "http://localhost:5173/booking-success"
    stripe_cancel_url: str = "http://localhost:5173/checkout"

    resend_api_key: str = ""
    email_from_address: str = "Costa Golf Bookings <bookings@costagolf.example>"

    scheduler_api_key: str = ""
    scheduler_service_account: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
