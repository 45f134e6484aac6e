import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from the project root (same directory as manage.py)
load_dotenv(BASE_DIR / '.env')

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'insecure-dev-key')
DEBUG = os.environ.get('DJANGO_DEBUG', 'true').lower() == 'true'
ALLOWED_HOSTS = [h.strip() for h in os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',') if h.strip()]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'apps.historic',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'core.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('SQLITE_PATH', BASE_DIR / 'db.sqlite3'),
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'historic',
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
USE_TZ = True
TIME_ZONE = 'UTC'
STATIC_URL = 'static/'

# Historic temperatures
HISTORIC_STORAGE_BACKEND = os.environ.get('HISTORIC_STORAGE_BACKEND', 'database')  # database | cache
HISTORIC_LOCAL_TIMEZONE = os.environ.get('HISTORIC_LOCAL_TIMEZONE', 'UTC')
HISTORIC_OUTLIER_METHOD = os.environ.get('HISTORIC_OUTLIER_METHOD', 'zscore')
_outlier_threshold = os.environ.get('HISTORIC_OUTLIER_THRESHOLD')
HISTORIC_OUTLIER_THRESHOLD = float(_outlier_threshold) if _outlier_threshold else None  # None: per-method default
HISTORIC_OUTLIER_GROUP_SIZE = int(os.environ.get('HISTORIC_OUTLIER_GROUP_SIZE', '30'))

# Meteostat
METEOSTAT_API_URL = 'https://d.meteostat.net/app/'
METEOSTAT_DAILY_URL_TEMPLATE = METEOSTAT_API_URL + 'proxy/stations/daily?station=${stationId}&start=${start}&end=${end}'
METEOSTAT_TIMEOUT = float(os.environ.get('METEOSTAT_TIMEOUT', '10'))
METEOSTAT_LOCALE = os.environ.get('METEOSTAT_LOCALE', 'en')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {'format': '%(asctime)s %(levelname)s %(name)s: %(message)s'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'simple'},
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': os.environ.get('LOG_LEVEL', 'INFO'),
        },
    },
}
