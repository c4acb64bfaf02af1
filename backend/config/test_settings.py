from .settings import *  # noqa: F401,F403

# DATABASE_URL (e.g. postgres://...) runs the suite against a real server,
# which enables the row-locking concurrency test.
if env('DATABASE_URL', default=''):  # noqa: F405
    DATABASES = {'default': env.db('DATABASE_URL')}
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': ':memory:',
        }
    }

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

PAYME_MERCHANT_ID = 'payme-merchant'
PAYME_SECRET_KEY = 'payme-secret'
CLICK_SECRET_KEY = 'click-secret'
