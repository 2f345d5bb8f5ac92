"""Global pytest configuration."""

import os

# Set storage defaults for tests before any imports
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
