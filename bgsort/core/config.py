from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "bgsort"
    storage_root: str = "uploads"
    temp_dir: str = "temp"

    max_images: int = 100
    image_route_prefix: str = "/api/images"

    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    openai_max_tokens: int = 300
    openai_timeout: float = 60.0

settings = Settings()
