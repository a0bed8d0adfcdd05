import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-daraja-demo")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() == "true"
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h.strip()]

INSTALLED_APPS = [
    "payments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
]

ROOT_URLCONF = "daraja_project.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "daraja_project.wsgi.application"

# Transactions live in memory only
DATABASES = {}

USE_TZ = True
TIME_ZONE = "UTC"

# M-Pesa Daraja
MPESA_ENV = os.getenv("ENVIRONMENT", "sandbox")
MPESA_CONSUMER_KEY = os.getenv("CONSUMER_KEY")
MPESA_CONSUMER_SECRET = os.getenv("CONSUMER_SECRET")
MPESA_SHORTCODE = os.getenv("BUSINESS_SHORT_CODE")
MPESA_PASSKEY = os.getenv("PASS_KEY")
MPESA_CALLBACK_URL = os.getenv("CALLBACK_URL")
MPESA_RESULT_URL = os.getenv("RESULT_URL")
MPESA_TIMEOUT_URL = os.getenv("TIMEOUT_URL")
MPESA_INITIATOR_NAME = os.getenv("INITIATOR_NAME")
MPESA_SECURITY_CREDENTIAL = os.getenv("SECURITY_CREDENTIAL")
MPESA_TIMEOUT = float(os.getenv("MPESA_TIMEOUT", "30"))

# Seconds; MPESA_SWEEP_INTERVAL=0 disables the background sweep
MPESA_SWEEP_INTERVAL = int(os.getenv("MPESA_SWEEP_INTERVAL", "3600"))
MPESA_TRANSACTION_RETENTION = int(os.getenv("MPESA_TRANSACTION_RETENTION", "3600"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {"()": "payments.log.JsonFormatter"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "json"},
    },
    "loggers": {
        "payments": {"handlers": ["console"], "level": LOG_LEVEL},
        "django": {"handlers": ["console"], "level": "WARNING"},
    },
}
