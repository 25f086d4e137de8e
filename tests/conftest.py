"""Test configuration: point settings at in-memory SQLite before the app is imported."""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ACCESS_TOKEN_SECRET"] = "test-access-secret"
os.environ["REFRESH_TOKEN_SECRET"] = "test-refresh-secret"
os.environ["COOKIE_SECURE"] = "true"
os.environ["UPLOAD_TEMP_DIR"] = tempfile.mkdtemp(prefix="streamtube-uploads-")
os.environ.setdefault("LOG_LEVEL", "WARNING")
