from pydantic import PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Used when a handle is built without an explicit page_size.
    CRUX_PAGE_SIZE: PositiveInt = 50
    CRUX_SOFT_DELETE_FIELD: str = "deleted_at"


settings = Settings()
