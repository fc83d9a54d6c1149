from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/geosnap.sqlite3"
    database_echo: bool = False
    database_timeout: float = 10.0  # seconds to wait on a locked database
    bcrypt_rounds: int = 12
    memories_days: int = 90
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "GEOSNAP_"}


settings = Settings()
