"""
Django settings for the condotrack project.

PT: Configuração lida de variáveis de ambiente com valores padrão locais.
EN: Settings read from environment variables with local defaults.
"""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-condotrack-local-only")
DEBUG = _env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = _env_list("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "apps.payments",
    "apps.coupons",
    "apps.audits",
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

ROOT_URLCONF = "condotrack.urls"
WSGI_APPLICATION = "condotrack.wsgi.application"

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

_DB_ENGINE = os.getenv("DB_ENGINE", "django.db.backends.sqlite3")
if _DB_ENGINE.endswith("sqlite3"):
    DATABASES = {
        "default": {
            "ENGINE": _DB_ENGINE,
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": _DB_ENGINE,
            "NAME": os.getenv("DB_NAME", "condotrack"),
            "USER": os.getenv("DB_USER", ""),
            "PASSWORD": os.getenv("DB_PASSWORD", ""),
            "HOST": os.getenv("DB_HOST", "localhost"),
            "PORT": os.getenv("DB_PORT", ""),
            "ATOMIC_REQUESTS": False,
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "pt-br"
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "America/Sao_Paulo")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "webhooks": os.getenv("THROTTLE_WEBHOOKS", "600/min"),
        "checkout": os.getenv("THROTTLE_CHECKOUT", "30/min"),
        "checkout_status": os.getenv("THROTTLE_CHECKOUT_STATUS", "120/min"),
    },
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=int(os.getenv("JWT_ACCESS_MINUTES", "60"))),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=int(os.getenv("JWT_REFRESH_DAYS", "7"))),
}

# Payments

PAYMENT_GATEWAYS = {
    "sandbox": {
        "BACKEND": "apps.payments.infrastructure.gateways.sandbox_gateway.SandboxGateway",
        "OPTIONS": {
            "webhook_secret": os.getenv("SANDBOX_WEBHOOK_SECRET", ""),
            "fees": {
                "pix_percent": os.getenv("PAYMENT_FEE_PIX_PERCENT", "0.0099"),
                "boleto_fixed": os.getenv("PAYMENT_FEE_BOLETO_FIXED", "2.99"),
                "card_percent": os.getenv("PAYMENT_FEE_CARD_PERCENT", "0.0299"),
                "card_fixed": os.getenv("PAYMENT_FEE_CARD_FIXED", "0.49"),
            },
        },
    },
}
PAYMENT_DEFAULT_GATEWAY = os.getenv("DEFAULT_PAYMENT_GATEWAY", "sandbox")
PAYMENT_DEFAULT_DUE_DAYS = int(os.getenv("PAYMENT_DEFAULT_DUE_DAYS", "3"))
REVENUE_INSTRUCTOR_PERCENT = os.getenv("REVENUE_INSTRUCTOR_PERCENT", "70")
REVENUE_PLATFORM_PERCENT = os.getenv("REVENUE_PLATFORM_PERCENT", "30")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
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
        "condotrack.payments": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "condotrack.coupons": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "condotrack.request": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
