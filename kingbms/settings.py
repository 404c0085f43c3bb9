import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_list(name: str) -> list[str]:
    value = os.environ.get(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-king-bms-dev-key")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS: list[str] = _env_list("DJANGO_ALLOWED_HOSTS") or (
    ["localhost", "127.0.0.1"] if DEBUG else []
)
CSRF_TRUSTED_ORIGINS = _env_list("CSRF_TRUSTED_ORIGINS")

# Production hardening is on unless DEBUG; each flag can still be overridden.
SECURE_SSL_REDIRECT = _env_bool("SECURE_SSL_REDIRECT", not DEBUG)
SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", not DEBUG)
CSRF_COOKIE_SECURE = _env_bool("CSRF_COOKIE_SECURE", not DEBUG)
SECURE_HSTS_SECONDS = _env_int("SECURE_HSTS_SECONDS", 0 if DEBUG else 31536000)
if _env_bool("USE_PROXY_SSL_HEADER", not DEBUG):
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework.authtoken",
    "staff",
    "bms.apps.BmsConfig",
    "api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "kingbms.urls"
WSGI_APPLICATION = "kingbms.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

RUNNING_TESTS = "test" in sys.argv or "pytest" in sys.modules
# Tests run on SQLite unless a real server is explicitly requested.
USE_DB_SERVER_FOR_TESTS = _env_bool("USE_DB_SERVER_FOR_TESTS")

DB_ENGINE = os.environ.get("DB_ENGINE", "django.db.backends.mysql")
DB_NAME = os.environ.get("DB_NAME")
if DB_NAME and (USE_DB_SERVER_FOR_TESTS or not RUNNING_TESTS):
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": DB_NAME,
            "USER": os.environ.get("DB_USER", ""),
            "PASSWORD": os.environ.get("DB_PASSWORD", ""),
            "HOST": os.environ.get("DB_HOST", "localhost"),
            "PORT": os.environ.get("DB_PORT", ""),
            "ATOMIC_REQUESTS": False,
            "CONN_MAX_AGE": _env_int("DB_CONN_MAX_AGE", 60),
        }
    }
    if DB_ENGINE.endswith("mysql"):
        DATABASES["default"]["OPTIONS"] = {"charset": "utf8mb4"}
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "king_bms.sqlite3",
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("TIME_ZONE", "Asia/Colombo")
USE_I18N = False
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
MEDIA_URL = "/media/"
MEDIA_ROOT = Path(os.environ.get("MEDIA_ROOT", BASE_DIR / "media"))

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
LOGIN_URL = "/admin/login/"

_authentication_classes = [
    "rest_framework.authentication.TokenAuthentication",
    "rest_framework.authentication.SessionAuthentication",
]
if _env_bool("ENABLE_BASIC_AUTH", False):
    _authentication_classes.append("rest_framework.authentication.BasicAuthentication")

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": tuple(_authentication_classes),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "EXCEPTION_HANDLER": "api.v1.errors.exception_handler",
    "DATE_FORMAT": "%Y-%m-%d",
}

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
        "workflow": {"format": "%(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
        "workflow": {"class": "logging.StreamHandler", "formatter": "workflow"},
    },
    "loggers": {
        "bms.workflow": {"handlers": ["workflow"], "level": LOG_LEVEL, "propagate": False},
        "bms": {"handlers": ["console"], "level": LOG_LEVEL},
        "staff": {"handlers": ["console"], "level": LOG_LEVEL},
        "api": {"handlers": ["console"], "level": LOG_LEVEL},
    },
}
if RUNNING_TESTS:
    LOGGING["handlers"]["console"]["class"] = "logging.NullHandler"
    LOGGING["handlers"]["workflow"]["class"] = "logging.NullHandler"

# Attendance kiosks authenticate with this shared key instead of a user token.
KIOSK_API_KEY = os.environ.get("KIOSK_API_KEY", "").strip()
LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 10)
ATTENDANCE_START_TIME = os.environ.get("ATTENDANCE_START_TIME", "09:00").strip()
ATTENDANCE_GRACE_MINUTES = _env_int("ATTENDANCE_GRACE_MINUTES", 10)
