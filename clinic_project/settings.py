# clinic_project/settings.py

from pathlib import Path
import os
from decouple import config, Csv

from .log_config import build_logging_config, configure_structlog

# --- BASE DIRECTORY ---
BASE_DIR = Path(__file__).resolve().parent.parent

# --- SECURITY SETTINGS ---
SECRET_KEY = config('SECRET_KEY', default='django-insecure-local-development-key')
DEBUG = config('DEBUG', default=False, cast=bool)
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='127.0.0.1,localhost', cast=Csv())

# --- APPLICATIONS ---
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'whitenoise.runserver_nostatic',
    'django.contrib.staticfiles',

    # Local apps
    'patients',
    'staff',
    'appointments',
    'audit_log',

    # Third-party apps
    'phonenumber_field',
]

# --- MIDDLEWARE ---
MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'audit_log.middleware.RequestUserMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

# --- URLS & WSGI ---
ROOT_URLCONF = 'clinic_project.urls'
WSGI_APPLICATION = 'clinic_project.wsgi.application'

# --- TEMPLATES (admin only) ---
TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
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

# --- DATABASE CONFIGURATION ---
if config('DB_NAME', default=''):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': config('DB_NAME'),
            'USER': config('DB_USER', default='postgres'),
            'PASSWORD': config('DB_PASSWORD', default=''),
            'HOST': config('DB_HOST', default='localhost'),
            'PORT': config('DB_PORT', default=5432, cast=int),
            'ATOMIC_REQUESTS': False,
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
            'OPTIONS': {'timeout': 20},
        }
    }


# --- INTERNATIONALIZATION ---
LANGUAGE_CODE = 'en-us'
TIME_ZONE = config('TIME_ZONE', default='Asia/Kolkata')
USE_I18N = True
USE_TZ = True

# --- STATIC FILES ---
STATIC_URL = 'static/'
STATIC_ROOT = os.path.join(BASE_DIR, 'staticfiles')
STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage'},
}

# --- AUTH CONFIGURATION ---
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
LOGIN_URL = '/accounts/login/'

# --- PHONE NUMBERS ---
PHONENUMBER_DEFAULT_REGION = config('PHONENUMBER_DEFAULT_REGION', default='IN')

# --- SESSION CONFIG ---
SESSION_COOKIE_AGE = 1800  # 30 minutes
SESSION_SAVE_EVERY_REQUEST = True

# --- SCHEDULING ENGINE ---
SCHEDULING = {
    'SLOT_MINUTES': config('SCHEDULING_SLOT_MINUTES', default=30, cast=int),
    'DEFAULT_DURATION_MINUTES': config('SCHEDULING_DEFAULT_DURATION_MINUTES', default=30, cast=int),
    'BOOKING_HORIZON_MONTHS': config('SCHEDULING_BOOKING_HORIZON_MONTHS', default=3, cast=int),
    'CANCELLATION_CUTOFF_HOURS': config('SCHEDULING_CANCELLATION_CUTOFF_HOURS', default=2, cast=int),
    'FULL_REFUND_HOURS': config('SCHEDULING_FULL_REFUND_HOURS', default=24, cast=int),
    'PARTIAL_REFUND_RATE': config('SCHEDULING_PARTIAL_REFUND_RATE', default='0.5'),
    'TRANSIENT_RETRY_ATTEMPTS': config('SCHEDULING_TRANSIENT_RETRY_ATTEMPTS', default=3, cast=int),
}

# --- LOGGING ---
LOG_LEVEL = config('LOG_LEVEL', default='INFO')
LOG_JSON = config('LOG_JSON', default=not DEBUG, cast=bool)
LOGGING = build_logging_config(LOG_LEVEL, json_logs=LOG_JSON)
configure_structlog()
