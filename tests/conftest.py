import os

# Settings are read once at import time of app.main; pin the test environment first.
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-0123456789abcdef0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ATTENDANCE_TIMEZONE"] = "UTC"
os.environ["SCHEMA_GUARD_STRICT"] = "false"
