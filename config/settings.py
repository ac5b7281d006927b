"""Django settings for the field-vegetation service.

Values come from environment variables with development-friendly defaults.
"""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-not-for-production")
DEBUG = _env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = _env_list(
    "DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver"
)

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_prometheus",
    "rest_framework",
    "drf_spectacular",
    "vegetation.apps.VegetationConfig",
]

MIDDLEWARE = [
    "django_prometheus.middleware.PrometheusBeforeMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "django_prometheus.middleware.PrometheusAfterMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
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

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("DJANGO_SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

# Process-local by default; token and tile URL caches use these aliases.
CACHES = {
    "default": {
        "BACKEND": os.getenv(
            "DJANGO_CACHE_BACKEND",
            "django.core.cache.backends.locmem.LocMemCache",
        ),
        "LOCATION": os.getenv("DJANGO_CACHE_LOCATION", "field-vegetation"),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "EXCEPTION_HANDLER": "config.api.exceptions.custom_exception_handler",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(
        minutes=int(os.getenv("JWT_ACCESS_TOKEN_MINUTES", "15"))
    ),
    "REFRESH_TOKEN_LIFETIME": timedelta(
        days=int(os.getenv("JWT_REFRESH_TOKEN_DAYS", "7"))
    ),
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Field Vegetation API",
    "DESCRIPTION": "NDVI history, previews and map tiles for farm fields.",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

# ---- Upstream providers ----
COPERNICUS_CLIENT_ID = os.getenv("COPERNICUS_CLIENT_ID", "")
COPERNICUS_CLIENT_SECRET = os.getenv("COPERNICUS_CLIENT_SECRET", "")
COPERNICUS_TOKEN_URL = os.getenv(
    "COPERNICUS_TOKEN_URL",
    "https://identity.dataspace.copernicus.eu/auth/realms/CDSE/"
    "protocol/openid-connect/token",
)
COPERNICUS_STATISTICS_URL = os.getenv(
    "COPERNICUS_STATISTICS_URL",
    "https://sh.dataspace.copernicus.eu/api/v1/statistics",
)
AGROMONITORING_API_KEY = os.getenv("AGROMONITORING_API_KEY", "")
AGROMONITORING_BASE_URL = os.getenv(
    "AGROMONITORING_BASE_URL", "https://api.agromonitoring.com/agro/1.0"
)

# ---- Vegetation tuning ----
VEGETATION_REQUEST_TIMEOUT_SECONDS = float(
    os.getenv("VEGETATION_REQUEST_TIMEOUT_SECONDS", "20")
)
VEGETATION_DEFAULT_INTERVAL_DAYS = int(
    os.getenv("VEGETATION_DEFAULT_INTERVAL_DAYS", "5")
)
VEGETATION_DEFAULT_HISTORY_DAYS = int(
    os.getenv("VEGETATION_DEFAULT_HISTORY_DAYS", "365")
)
VEGETATION_MAX_DATERANGE_DAYS = int(
    os.getenv("VEGETATION_MAX_DATERANGE_DAYS", "730")
)
VEGETATION_MAX_CLOUD = int(os.getenv("VEGETATION_MAX_CLOUD", "50"))
VEGETATION_TILE_CACHE_TTL_SECONDS = int(
    os.getenv("VEGETATION_TILE_CACHE_TTL_SECONDS", "300")
)
VEGETATION_TILE_PALETTE_ID = int(os.getenv("VEGETATION_TILE_PALETTE_ID", "3"))
VEGETATION_IMAGE_SEARCH_DAYS = int(
    os.getenv("VEGETATION_IMAGE_SEARCH_DAYS", "60")
)
VEGETATION_PREVIEW_MAX_DIMENSION = int(
    os.getenv("VEGETATION_PREVIEW_MAX_DIMENSION", "512")
)
VEGETATION_PREVIEW_DEFAULT_NDVI = float(
    os.getenv("VEGETATION_PREVIEW_DEFAULT_NDVI", "0.6")
)

LOG_LEVEL = os.getenv("DJANGO_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "httpx": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        "vegetation": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
