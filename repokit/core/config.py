from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "repokit"

    DATABASE_URL: str = "sqlite+pysqlite:///:memory:"
    SQL_ECHO: bool = False

    PAGE_SIZE_DEFAULT: int = 10
    PAGE_SIZE_MAX: int = 500  # 0 disables the upper clamp
    PAGE_SIZE_PARAM: str = "pagesize"
    PAGE_NUMBER_PARAM: str = "p"

    # Unknown operators and unmapped filter columns are passed through to the
    # database unless strict mode is on.
    STRICT_FILTERS: bool = False

    def clamp_page_size(self, value: int) -> int:
        size = max(int(value), 1)
        if self.PAGE_SIZE_MAX > 0:
            size = min(size, self.PAGE_SIZE_MAX)
        return size

settings = Settings()
