"""
Commerce Returns - Return Lifecycle Manager
Django Settings Configuration
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Security
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-change-this')
DEBUG = os.getenv('DEBUG', 'True') == 'True'
ALLOWED_HOSTS = ['*']


# ============================================================
# APPLICATION DEFINITION
# ============================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third party apps
    'rest_framework',           # Django REST Framework for APIs
    'drf_spectacular',          # Auto-generated API documentation

    # Our apps
    'returns',                  # Return lifecycle (create, fulfill, receive)
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'commerce_returns.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'commerce_returns.wsgi.application'


# ============================================================
# DATABASE CONFIGURATION
# ============================================================
# SQLite for local development, any Django backend via env vars

DATABASES = {
    'default': {
        'ENGINE': os.getenv('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.getenv('DB_NAME', BASE_DIR / 'db.sqlite3'),
        'USER': os.getenv('DB_USER', ''),
        'PASSWORD': os.getenv('DB_PASSWORD', ''),
        'HOST': os.getenv('DB_HOST', ''),
        'PORT': os.getenv('DB_PORT', ''),
    }
}


# ============================================================
# PASSWORD VALIDATION
# ============================================================

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# ============================================================
# INTERNATIONALIZATION
# ============================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True


# ============================================================
# STATIC FILES
# ============================================================

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# ============================================================
# DJANGO REST FRAMEWORK
# ============================================================

REST_FRAMEWORK = {
    # Domain errors (not found / not allowed / invalid data) -> JSON responses
    'EXCEPTION_HANDLER': 'returns.exceptions.return_exception_handler',

    # OpenAPI schema generation
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    # Default renderer - JSON responses
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
        'rest_framework.renderers.BrowsableAPIRenderer',
    ],

    # Date/time format
    'DATETIME_FORMAT': '%Y-%m-%d %H:%M:%S',
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Commerce Returns API',
    'DESCRIPTION': 'Create, fulfill and receive order returns',
    'VERSION': '1.0.0',
}


# ============================================================
# EMAIL
# ============================================================
# Customer notifications about return progress

EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')


# ============================================================
# CELERY CONFIGURATION
# ============================================================
# Used for background tasks: return notification emails

CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://127.0.0.1:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_BROKER_URL', 'redis://127.0.0.1:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = 'UTC'
CELERY_TASK_ALWAYS_EAGER = os.getenv('CELERY_TASK_ALWAYS_EAGER', 'False') == 'True'

# Retry configuration for transient failures
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'loggers': {
        'returns': {
            'handlers': ['console'],
            'level': os.getenv('RETURNS_LOG_LEVEL', 'INFO'),
            'propagate': True,
        },
    },
}

# File logging only when a target is configured (e.g. shipped to Kibana)
RETURNS_LOG_FILE = os.getenv('RETURNS_LOG_FILE')
if RETURNS_LOG_FILE:
    LOGGING['handlers']['file'] = {
        'class': 'logging.FileHandler',
        'filename': RETURNS_LOG_FILE,
        'formatter': 'json',
    }
    LOGGING['loggers']['returns']['handlers'].append('file')


# ============================================================
# RETURN MODULE BUSINESS CONFIGURATION
# ============================================================

RETURNS = {
    'DEFAULT_PAGE_SIZE': 50,                    # list() page size when none given
    'MAX_PAGE_SIZE': 100,                       # Upper bound for API list requests
    'NOTIFY_FROM_EMAIL': os.getenv('RETURNS_FROM_EMAIL', 'returns@example.com'),

    # provider_id on a shipping option -> fulfillment provider class
    'FULFILLMENT_PROVIDERS': {
        'manual': 'returns.fulfillment.ManualFulfillmentProvider',
    },
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
