"""
Django settings for clinic_scheduler project.

Environment variables override the development defaults below.
"""

import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes", "on")


def _env_int(name, default):
    return int(os.environ.get(name, default))


SECRET_KEY = os.environ.get(
    "DJANGO_SECRET_KEY",
    "django-insecure-dev-only-change-me-in-production",
)

DEBUG = _env_bool("DJANGO_DEBUG", True)

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
    if host.strip()
]


INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    # Local apps
    "scheduling",
    "patients",
    "providers",
    "appointments",
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

ROOT_URLCONF = "clinic_scheduler.urls"

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

WSGI_APPLICATION = "clinic_scheduler.wsgi.application"


# Database
# PostgreSQL (psycopg) when POSTGRES_DB is set, SQLite otherwise.

if os.environ.get("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ["POSTGRES_DB"],
            "USER": os.environ.get("POSTGRES_USER", "postgres"),
            "PASSWORD": os.environ.get("POSTGRES_PASSWORD", ""),
            "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
            "PORT": os.environ.get("POSTGRES_PORT", "5432"),
            "CONN_MAX_AGE": _env_int("POSTGRES_CONN_MAX_AGE", 60),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
            # File-backed test database so threaded booking tests get real locking.
            "TEST": {"NAME": BASE_DIR / "test_db.sqlite3"},
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# Internationalization

LANGUAGE_CODE = "en-us"

# Working hours in the SCHEDULING block are interpreted in this zone.
TIME_ZONE = os.environ.get("CLINIC_TIME_ZONE", "UTC")

USE_I18N = True

USE_TZ = True


STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"


# Django REST Framework

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=_env_int("JWT_ACCESS_MINUTES", 30)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=_env_int("JWT_REFRESH_DAYS", 7)),
}


# Scheduling engine
# Defaults for the working-hours policy and the booking coordinator.
# Providers may override hours and granularity on their own record.

SCHEDULING = {
    "OPEN_HOUR": _env_int("SCHEDULING_OPEN_HOUR", 9),
    "CLOSE_HOUR": _env_int("SCHEDULING_CLOSE_HOUR", 17),
    # Python weekday(): 0 = Monday ... 6 = Sunday
    "ALLOWED_WEEKDAYS": [
        int(day)
        for day in os.environ.get("SCHEDULING_ALLOWED_WEEKDAYS", "0,1,2,3,4").split(",")
        if day.strip()
    ],
    "SLOT_GRANULARITY_MINUTES": _env_int("SCHEDULING_SLOT_MINUTES", 30),
    "LOCK_TIMEOUT_SECONDS": float(os.environ.get("SCHEDULING_LOCK_TIMEOUT", "5")),
    "READ_RETRY_ATTEMPTS": _env_int("SCHEDULING_READ_RETRIES", 3),
    "RECURRENCE_MAX_OCCURRENCES": _env_int("SCHEDULING_RECURRENCE_MAX", 104),
    "NEXT_AVAILABLE_SEARCH_DAYS": _env_int("SCHEDULING_SEARCH_DAYS", 30),
    "REMINDER_LEAD_MINUTES": _env_int("SCHEDULING_REMINDER_LEAD_MINUTES", 24 * 60),
    "REMINDER_WEBHOOK_URL": os.environ.get("REMINDER_WEBHOOK_URL", ""),
    "REMINDER_WEBHOOK_TIMEOUT": float(os.environ.get("REMINDER_WEBHOOK_TIMEOUT", "5")),
}


# Logging

LOG_LEVEL = os.environ.get("DJANGO_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "scheduling": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "appointments": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "providers": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
