from pathlib import Path
import logging
import os
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

env_path = BASE_DIR / ".env"
load_dotenv(dotenv_path=str(env_path), encoding="utf-8-sig")
SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-only-insecure-key")

DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"

ALLOWED_HOSTS = ['localhost', '127.0.0.1', '*']

INSTALLED_APPS = [
    'daphne',
    'django.contrib.staticfiles',
    'a_users',
    'a_rtchat',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'a_core.middleware.AuthTokenGateMiddleware',
]

ROOT_URLCONF = 'a_core.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
            ],
        },
    },
]

ASGI_APPLICATION = 'a_core.asgi.application'

# Firestore is the only store; nothing is persisted locally.
DATABASES = {}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

# Firebase
FIREBASE_CREDENTIALS_FILE = os.environ.get("FIREBASE_CREDENTIALS_FILE")
FIREBASE_PROJECT_ID = os.environ.get("FIREBASE_PROJECT_ID")

# Routing gate + session cookie
LOGIN_URL = '/login/'
LOGIN_REDIRECT_URL = '/dashboard/'
AUTH_GATE_EXEMPT_PREFIXES = ('/static/', '/media/', '/api/', '/ws/')
AUTH_TOKEN_COOKIE_NAME = "authToken"
AUTH_TOKEN_COOKIE_MAX_AGE = 60 * 60  # 1 hour, matches Firebase ID token lifetime
CSRF_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_SAMESITE = "Strict"

# Last opened chat, remembered per user in the browser
LAST_CHAT_COOKIE_PREFIX = "lastChat_"
LAST_CHAT_COOKIE_MAX_AGE = 60 * 60 * 24 * 365

# Chat store
CHAT_PREVIEW_MAX_LENGTH = 100
DELETED_MESSAGE_TEXT = "This message was deleted"
FIRESTORE_BATCH_LIMIT = 500  # Firestore hard limit per commit

# Presence/Online status settings
PRESENCE_ONLINE_WINDOW_SECONDS = 120  #2 minutes

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "a_core": {"handlers": ["console"], "level": LOG_LEVEL},
        "a_users": {"handlers": ["console"], "level": LOG_LEVEL},
        "a_rtchat": {"handlers": ["console"], "level": LOG_LEVEL},
    },
}

logging.captureWarnings(True)
