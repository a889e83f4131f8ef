import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    PROJECT_NAME: str = "specialist-portal"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = _env_flag("DEBUG", "0")
    LOG_DIR: str = os.getenv("LOG_DIR", "log")
    LOG_FILE: str = os.getenv("LOG_FILE", "specialist_portal.log")
    LOG_TO_FILE: bool = _env_flag("LOG_TO_FILE", "1")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    BACKEND_URL: str = os.getenv("BACKEND_URL", "http://localhost:8080").rstrip("/")
    TEMPLATE_DIR: str = os.getenv(
        "TEMPLATE_DIR", os.path.join(os.path.dirname(__file__), "templates")
    )

    SESSION_COOKIE_NAME: str = "portal_session_id"
    TOKEN_COOKIE_NAME: str = "portal_token"
    LANG_COOKIE_NAME: str = "lang"
    DEFAULT_LANG: str = "ar"
    SESSION_TIMEOUT_MINUTES: int = 120

    UPSTREAM_TIMEOUT_SECONDS: float = 10.0
    HEALTH_CHECK_ENABLED: bool = _env_flag("HEALTH_CHECK_ENABLED", "1")
    HEALTH_CACHE_SECONDS: float = 10.0
    HEALTH_TIMEOUT_SECONDS: float = 2.0

    # Analytics
    SESSION_HISTORY_LIMIT: int = 30
    TIMELINE_LENGTH: int = 20
    ATTEMPTS_DEFAULT_LIMIT: int = 50
    ATTEMPTS_MAX_LIMIT: int = 200
    EASY_THRESHOLD: float = 80
    MEDIUM_THRESHOLD: float = 50

    # Report
    RECENT_WINDOW: int = 5
    RECENT_TABLE_ROWS: int = 8
    REPORT_PAGE_SIZE: str = "A4"
    RENDER_SNIPPET_LENGTH: int = 200

    @property
    def verbose_errors(self) -> bool:
        return self.ENVIRONMENT != "production"


settings = Settings()
