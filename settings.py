from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    mongodb_uri: str
    db_name: str = "tinglebot"
    inventories_db_name: str = "inventories"
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "*"
    admin_user_ids: str = ""
    moderator_user_ids: str = ""
    aggregation_workers: int = 8
    tokens_per_level: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

settings = Settings()
