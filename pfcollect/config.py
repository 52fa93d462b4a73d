from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError


def project_root() -> Path:
    return Path(__file__).resolve().parents[1]


class Settings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    db_host: str = Field(default="localhost", alias="DB_HOST")
    db_port: int = Field(default=5432, alias="DB_PORT")
    db_user: str = Field(default="postgres", alias="DB_USER")
    db_password: SecretStr = Field(default=SecretStr(""), alias="DB_PASSWORD")
    db_name: str = Field(default="pokefolio", alias="DB_NAME")
    db_driver: str = Field(default="postgresql+psycopg", alias="DB_DRIVER")

    ptcg_api_url: str = Field(default="https://api.pokemontcg.io/v2", alias="PTCG_API_URL")
    ptcg_api_key: SecretStr | None = Field(default=None, alias="PTCG_API")
    tcgp_api_url: str = Field(default="https://api.tcgplayer.com", alias="TCGP_API_URL")
    tcgp_public: str | None = Field(default=None, alias="TCGP_PUBLIC")
    tcgp_private: SecretStr | None = Field(default=None, alias="TCGP_PRIVATE")
    fx_rates_url: str = Field(default="https://api.fxratesapi.com/latest", alias="FX_RATES_URL")
    admin_api_url: str | None = Field(default=None, alias="API_POKEFOLIO_BASE_URL")
    admin_api_key: SecretStr | None = Field(default=None, alias="POKEFOLIO_ADMIN_API_KEY")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")
    http_request_delay_seconds: float = Field(default=0.1, alias="HTTP_REQUEST_DELAY_SECONDS")

    sealed_image_url: str = Field(
        default="https://public.getcollectr.com/public-assets/products/product_",
        alias="SEALED_IMAGE_URL",
    )
    sprite_url: str = Field(
        default="https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/pokemon/other/showdown",
        alias="SPRITE_URL",
    )

    aws_access: SecretStr | None = Field(default=None, alias="AWS_ACCESS")
    aws_secret: SecretStr | None = Field(default=None, alias="AWS_SECRET")
    s3_endpoint: str = Field(default="https://nyc3.digitaloceanspaces.com", alias="S3_ENDPOINT")
    s3_region: str = Field(default="nyc3", alias="S3_REGION")
    s3_bucket: str = Field(default="pokefolio", alias="S3_BUCKET")
    cdn_base_url: str = Field(
        default="https://pokefolio.nyc3.cdn.digitaloceanspaces.com", alias="CDN_BASE_URL"
    )

    log_dir: str = Field(default="logs", alias="LOG_DIR")

    scheduler_timezone: str = Field(default="UTC", alias="SCHEDULER_TIMEZONE")
    scheduler_max_instances: int = Field(default=1, alias="SCHEDULER_MAX_INSTANCES")
    scheduler_coalesce: bool = Field(default=True, alias="SCHEDULER_COALESCE")
    scheduler_misfire_grace_seconds: int = Field(
        default=300, alias="SCHEDULER_MISFIRE_GRACE_SECONDS"
    )
    discord_cleanup_enabled: bool = Field(default=True, alias="DISCORD_CLEANUP_ENABLED")


def load_settings(env_path: Path | None = None) -> Settings:
    env_file = env_path or (project_root() / ".env")
    if env_file.exists():
        load_dotenv(env_file, override=False)
    try:
        return Settings.model_validate(dict(os.environ))
    except ValidationError as exc:
        raise RuntimeError(
            "Invalid or missing environment variables. Copy `.env.example` to `.env` and edit it."
        ) from exc
