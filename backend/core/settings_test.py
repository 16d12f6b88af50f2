"""测试配置：SQLite、本地对象存储、Celery 同步执行。"""

import tempfile

from .settings import *  # noqa: F401,F403

SECRET_KEY = "test-secret-key"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

STORAGE_BACKEND = "local"
OBJECT_STORE_ROOT = tempfile.mkdtemp(prefix="delivery-objects-")
SEARCH_BACKEND = "database"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = "memory://"

TIME_ZONE = "UTC"
PUBLIC_BASE_URL = "http://testserver"
PRESIGN_DEFAULT_TTL = 3600
PRESIGN_MAX_TTL = 24 * 3600
