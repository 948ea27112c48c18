import logging

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "venue_directory"
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Outbound HTTP (short-link expansion, page fetch, reverse geocoding)
    http_user_agent: str = "Mozilla/5.0 (compatible; PiscolaBot/1.0)"
    http_timeout_seconds: float = 10.0
    nominatim_url: str = "https://nominatim.openstreetmap.org/reverse"

    # How to read a bracketed [a,b] pair when both values fit a latitude.
    # "first_is_longitude" or "larger_magnitude_is_longitude".
    ambiguous_pair_order: str = "first_is_longitude"

    venue_page_size: int = 20
    bounds_default_limit: int = 50
    bounds_max_limit: int = 100

    # Shared secret for /admin routes and theme updates. Empty disables them.
    admin_token: str = ""

    log_level: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Install a basic root logging configuration."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
