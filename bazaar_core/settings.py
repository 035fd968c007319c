"""
Django settings for BAZAAR project.
Marketplace order ledger, push notifications and delivery estimation

Configuration optimisée pour:
- PostgreSQL or SQLite (orders, push tokens, notification log)
- Redis/Celery (notification fan-out in background)
- Django Channels (native push bridge over WebSocket)
"""

from pathlib import Path
from decouple import config, Csv

# ===========================================
# BASE CONFIGURATION
# ===========================================
BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = config('SECRET_KEY', default='dev-secret-key-change-in-production')
DEBUG = config('DEBUG', default=True, cast=bool)
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1,0.0.0.0', cast=Csv())

# ===========================================
# APPLICATION DEFINITION
# ===========================================
INSTALLED_APPS = [
    # Django Core
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',

    # Daphne MUST be before staticfiles
    'daphne',  # ASGI server for the push bridge
    'channels',  # Native push bridge (WebSocket)

    'django.contrib.staticfiles',

    # Third Party
    'rest_framework',
    'corsheaders',

    # BAZAAR Apps
    'orders.apps.OrdersConfig',
    'notifications.apps.NotificationsConfig',
    'logistics.apps.LogisticsConfig',
]


MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'bazaar_core.urls'

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

WSGI_APPLICATION = 'bazaar_core.wsgi.application'

# ===========================================
# DATABASE
# ===========================================
DB_ENGINE = config('DB_ENGINE', default='django.db.backends.sqlite3')

if DB_ENGINE.endswith('sqlite3'):
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': config('DB_NAME', default=str(BASE_DIR / 'bazaar.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': config('DB_NAME', default='bazaar_db'),
            'USER': config('DB_USER', default='bazaar_user'),
            'PASSWORD': config('DB_PASSWORD', default=''),
            'HOST': config('DB_HOST', default='db'),
            'PORT': config('DB_PORT', default='5432'),
        }
    }

# ===========================================
# PASSWORD VALIDATION
# ===========================================
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

# ===========================================
# INTERNATIONALIZATION
# ===========================================
LANGUAGE_CODE = 'en-us'
TIME_ZONE = config('TIME_ZONE', default='UTC')
USE_I18N = True
USE_TZ = True

# ===========================================
# STATIC FILES
# ===========================================
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# ===========================================
# DEFAULT PRIMARY KEY
# ===========================================
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ===========================================
# REDIS, CACHE & CHANNELS
# ===========================================
REDIS_URL = config('REDIS_URL', default='redis://redis:6379/0')

CACHE_BACKEND = config('CACHE_BACKEND', default='django.core.cache.backends.locmem.LocMemCache')

CACHES = {
    'default': {
        'BACKEND': CACHE_BACKEND,
        'LOCATION': REDIS_URL if 'redis' in CACHE_BACKEND.lower() else 'bazaar-default',
    }
}

ASGI_APPLICATION = 'bazaar_core.asgi.application'

CHANNEL_LAYER_BACKEND = config('CHANNEL_LAYER_BACKEND', default='channels.layers.InMemoryChannelLayer')

if CHANNEL_LAYER_BACKEND == 'channels_redis.core.RedisChannelLayer':
    CHANNEL_LAYERS = {
        'default': {
            'BACKEND': CHANNEL_LAYER_BACKEND,
            'CONFIG': {
                'hosts': [config('CHANNEL_REDIS_URL', default='redis://redis:6379/1')],
                'capacity': 1500,
                'expiry': 10,
            },
        },
    }
else:
    CHANNEL_LAYERS = {
        'default': {'BACKEND': CHANNEL_LAYER_BACKEND},
    }

# ===========================================
# DJANGO REST FRAMEWORK
# ===========================================
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
}

# ===========================================
# CORS (Cross-Origin Resource Sharing)
# ===========================================
CORS_ALLOW_ALL_ORIGINS = config('CORS_ALLOW_ALL_ORIGINS', default=True, cast=bool)
CORS_ALLOWED_ORIGINS = config(
    'CORS_ALLOWED_ORIGINS',
    default='http://localhost:3000,http://127.0.0.1:3000',
    cast=Csv()
)

# ===========================================
# CELERY CONFIGURATION
# ===========================================
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default=REDIS_URL)
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default=REDIS_URL)
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = config('CELERY_TASK_ALWAYS_EAGER', default=False, cast=bool)

# ===========================================
# NOTIFICATIONS
# ===========================================
# Administrators always receive order notifications (except for their own actions)
NOTIFICATION_ADMIN_KEYS = config('NOTIFICATION_ADMIN_KEYS', default='dl14v1k7,682dri6b,pngukw', cast=Csv())

# Anonymous sessions never register devices nor dispatch
GUEST_USER_KEY = config('GUEST_USER_KEY', default='guest_user')

# Event/role toggles: remote document first, then the bundled local copy
NOTIFICATION_CONFIG_URL = config('NOTIFICATION_CONFIG_URL', default='')
NOTIFICATION_CONFIG_PATH = config(
    'NOTIFICATION_CONFIG_PATH',
    default=str(BASE_DIR / 'notifications' / 'data' / 'notification_config.json')
)
NOTIFICATION_MESSAGES_PATH = config(
    'NOTIFICATION_MESSAGES_PATH',
    default=str(BASE_DIR / 'notifications' / 'data' / 'notification_messages.json')
)
NOTIFICATION_CONFIG_TIMEOUT = config('NOTIFICATION_CONFIG_TIMEOUT', default=5, cast=int)

# -------------------------------------------
# PUSH PROVIDER
# -------------------------------------------
# Toggle between providers: 'null', 'channels' (native bridge) or 'fcm' (signed HTTP v1)
PUSH_PROVIDER = config('PUSH_PROVIDER', default='null')
PUSH_SEND_WORKERS = config('PUSH_SEND_WORKERS', default=8, cast=int)

FCM_PROJECT_ID = config('FCM_PROJECT_ID', default='')
FCM_CLIENT_EMAIL = config('FCM_CLIENT_EMAIL', default='')
FCM_PRIVATE_KEY = config('FCM_PRIVATE_KEY', default='').replace('\\n', '\n')
FCM_SEND_TIMEOUT = config('FCM_SEND_TIMEOUT', default=10, cast=int)

# -------------------------------------------
# DEVICE SETUP
# -------------------------------------------
PUSH_SETUP_MAX_ATTEMPTS = config('PUSH_SETUP_MAX_ATTEMPTS', default=3, cast=int)
PUSH_SETUP_BACKOFF_SECONDS = config('PUSH_SETUP_BACKOFF_SECONDS', default=3, cast=int)
PUSH_SETUP_SESSION_TTL = config('PUSH_SETUP_SESSION_TTL', default=60 * 60 * 24, cast=int)

# ===========================================
# BUSINESS RULES - DELIVERY ESTIMATOR
# ===========================================
DELIVERY_CONFIG_URL = config('DELIVERY_CONFIG_URL', default='')
DELIVERY_CONFIG_TIMEOUT = config('DELIVERY_CONFIG_TIMEOUT', default=5, cast=int)
DELIVERY_CONFIG_CACHE_TTL = config('DELIVERY_CONFIG_CACHE_TTL', default=300, cast=int)

# Dispatch office (route origin)
DELIVERY_DEPOT_LAT = config('DELIVERY_DEPOT_LAT', default=33.5138, cast=float)
DELIVERY_DEPOT_LNG = config('DELIVERY_DEPOT_LNG', default=36.2765, cast=float)

# ===========================================
# LOGGING CONFIGURATION
# ===========================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': config('DJANGO_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
        'celery': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'orders': {
            'handlers': ['console'],
            'level': config('BAZAAR_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
        'notifications': {
            'handlers': ['console'],
            'level': config('BAZAAR_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
        'logistics': {
            'handlers': ['console'],
            'level': config('BAZAAR_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
    },
}
