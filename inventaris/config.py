import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "inventaris.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)
    DB_BUSY_TIMEOUT_SECONDS = _int_env("DB_BUSY_TIMEOUT_SECONDS", 30)
    DB_READ_RETRY_ATTEMPTS = _int_env("DB_READ_RETRY_ATTEMPTS", 3)
    DB_READ_RETRY_BACKOFF_MS = _int_env("DB_READ_RETRY_BACKOFF_MS", 100)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-inventaris")
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    LOGIN_MAX_FAILURES = _int_env("LOGIN_MAX_FAILURES", 10)
    LOGIN_FAILURE_WINDOW_SECONDS = _int_env("LOGIN_FAILURE_WINDOW_SECONDS", 300)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)

    # Supervisor scope widening, "CODE=CODE|CODE;..." (QC supervisors also cover QA and PP).
    SCOPE_WIDENING = os.environ.get("SCOPE_WIDENING", "QC=QC|QA|PP")
    NOTIFICATIONS_ENABLED = _bool_env("NOTIFICATIONS_ENABLED", True)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL belum diatur untuk lingkungan production.")
        if env == "production" and self.SECRET_KEY == "dev-secret-inventaris":
            raise RuntimeError("SECRET_KEY tidak aman untuk production.")
