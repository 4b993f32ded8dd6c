from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Local SQLite ---
    sqlite_db_path: Path = Path("/opt/sonoscribe/data/sonoscribe.db")

    # --- Report defaults ---
    default_gender: str = "male"

    # --- Input limits ---
    max_template_chars: int = 80_000
    max_mapping_heading_chars: int = 200

    # --- Web interface ---
    web_host: str = "0.0.0.0"
    web_port: int = 8080

    @property
    def sqlite_url(self) -> str:
        return f"sqlite:///{self.sqlite_db_path}"


settings = Settings()
