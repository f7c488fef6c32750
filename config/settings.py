"""
Django settings for the UNCED payments project.

- Secrets via .env
- PostgreSQL
- WhiteNoise (static)
- Celery (receipt e-mails)
- Security hardening (HTTPS)
"""

from pathlib import Path
import os
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Charger .env (à la racine du projet)
load_dotenv(BASE_DIR / ".env", override=True)


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def _env_csv(name: str) -> list:
    return [v.strip() for v in os.getenv(name, "").split(",") if v.strip()]


# =============================
# SECURITY
# =============================
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "CHANGE_ME")
DEBUG = _env_bool("DJANGO_DEBUG")

# ALLOWED_HOSTS sous forme CSV: "ip,domain.com,www.domain.com"
ALLOWED_HOSTS = _env_csv("DJANGO_ALLOWED_HOSTS")

# CSRF trusted origins: "https://domain.com,https://www.domain.com"
CSRF_TRUSTED_ORIGINS = _env_csv("DJANGO_CSRF_TRUSTED_ORIGINS")

X_FRAME_OPTIONS = "DENY"
SECURE_CONTENT_TYPE_NOSNIFF = True
SECURE_REFERRER_POLICY = "same-origin"


# =============================
# APPLICATIONS
# =============================
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    "accounts",
    "core.apps.CoreConfig",
]

# =============================
# MIDDLEWARE
# =============================
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    # WhiteNoise doit être juste après SecurityMiddleware
    "whitenoise.middleware.WhiteNoiseMiddleware",

    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",

    "accounts.middleware.CurrentUserMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.template.context_processors.debug",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# =============================
# DATABASE (PostgreSQL)
# =============================
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME", "unced"),
        "USER": os.getenv("DB_USER", "unced"),
        "PASSWORD": os.getenv("DB_PASSWORD", ""),
        "HOST": os.getenv("DB_HOST", "127.0.0.1"),
        "PORT": os.getenv("DB_PORT", "5432"),
        "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
    }
}

# =============================
# PASSWORD VALIDATION
# =============================
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# =============================
# I18N / TZ
# =============================
LANGUAGE_CODE = "es-pe"
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "America/Lima")
USE_I18N = True
USE_TZ = True

# =============================
# STATIC / MEDIA
# =============================
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

STATIC_DIR = BASE_DIR / "static"
STATICFILES_DIRS = [STATIC_DIR] if STATIC_DIR.exists() else []

MEDIA_URL = "/media/"
MEDIA_ROOT = Path(os.getenv("DJANGO_MEDIA_ROOT", str(BASE_DIR / "media")))

# WhiteNoise storage (hash + gzip + brotli)
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}

WHITENOISE_MAX_AGE = int(os.getenv("WHITENOISE_MAX_AGE", "31536000"))  # 1 an

# Vouchers: taille max en Mo
FILE_UPLOAD_MAX_MEMORY_SIZE = 5 * 1024 * 1024


# =============================
# AUTH REDIRECTIONS
# =============================
LOGIN_URL = "admin:login"
LOGIN_REDIRECT_URL = "/"

# =============================
# DEFAULT PK
# =============================
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# =============================
# EMAIL
# =============================
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS", "True")
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "UNCED <no-reply@unced.edu.pe>")

APP_URL = os.getenv("APP_URL", "http://localhost:8000")


# =============================
# CELERY
# =============================
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = _env_bool("CELERY_TASK_ALWAYS_EAGER")
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE


# =============================
# UNCED (règles métier)
# =============================
UNCED_SCHOOL_NAME = os.getenv("UNCED_SCHOOL_NAME", "UNCED")
UNCED_CONTACT_LINE = os.getenv("UNCED_CONTACT_LINE", "info@unced.edu.pe | +51 999 999 999")
UNCED_CURRENCY = "S/"
UNCED_DEFAULT_LATE_FEE_PERCENTAGE = os.getenv("UNCED_DEFAULT_LATE_FEE_PERCENTAGE", "5.00")
UNCED_DEFAULT_GRACE_PERIOD_DAYS = int(os.getenv("UNCED_DEFAULT_GRACE_PERIOD_DAYS", "5"))
UNCED_VOUCHER_MAX_UPLOAD_MB = int(os.getenv("UNCED_VOUCHER_MAX_UPLOAD_MB", "5"))


# =============================
# LOGGING
# =============================
LOG_DIR = Path(os.getenv("DJANGO_LOG_DIR", str(BASE_DIR / "logs")))
LOG_LEVEL = os.getenv("DJANGO_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "core": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}

if _env_bool("DJANGO_LOG_TO_FILE"):
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    LOGGING["handlers"]["file"] = {
        "level": "INFO",
        "class": "logging.handlers.TimedRotatingFileHandler",
        "when": "W6",
        "interval": 4,
        "backupCount": 3,
        "encoding": "utf8",
        "filename": str(LOG_DIR / "unced.log"),
        "formatter": "verbose",
    }
    for _name in ("django", "core"):
        LOGGING["loggers"][_name]["handlers"].append("file")


# =============================
# SECURITY (PROD)
# =============================
SECURE_PROXY_SSL_HEADER = None
SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

SECURE_HSTS_SECONDS = 0
SECURE_HSTS_INCLUDE_SUBDOMAINS = False
SECURE_HSTS_PRELOAD = False

# Active seulement en PROD (DEBUG=False)
if not DEBUG:
    # Nginx reverse proxy -> la requête originale était en HTTPS
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

    SECURE_SSL_REDIRECT = _env_bool("DJANGO_SECURE_SSL_REDIRECT", "True")
    SESSION_COOKIE_SECURE = _env_bool("DJANGO_SESSION_COOKIE_SECURE", "True")
    CSRF_COOKIE_SECURE = _env_bool("DJANGO_CSRF_COOKIE_SECURE", "True")

    SECURE_HSTS_SECONDS = int(os.getenv("DJANGO_HSTS_SECONDS", "31536000"))  # 1 an
    SECURE_HSTS_INCLUDE_SUBDOMAINS = _env_bool("DJANGO_HSTS_INCLUDE_SUBDOMAINS", "True")
    SECURE_HSTS_PRELOAD = _env_bool("DJANGO_HSTS_PRELOAD", "True")
