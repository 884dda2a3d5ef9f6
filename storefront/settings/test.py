from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

ALLOWED_HOSTS = ['testserver']

JWT_SECRET = 'test-jwt-secret'

PAY_APP_ID = '2553'
PAY_MAC_KEY = 'test-mac-key'
PAY_CALLBACK_KEY = 'test-callback-key'
PAY_PROVIDER_BASE_URL = 'https://sb-openapi.example.vn'
APP_BASE_URL = 'https://shop.example.vn'
PAYMENTS_REQUIRE_HTTPS = False

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {'null': {'class': 'logging.NullHandler'}},
    'root': {'handlers': ['null'], 'level': 'WARNING'},
}
