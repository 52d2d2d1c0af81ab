import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))
# Upper bound for a single store round trip
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", 5.0))

REDIS_URL = f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"

# Optimistic write retries after the first attempt
MERGE_MAX_RETRIES = int(os.getenv("MERGE_MAX_RETRIES", 5))
OPERATION_TIMEOUT_SECONDS = float(os.getenv("OPERATION_TIMEOUT_SECONDS", 10.0))

INBOX_MAX_LENGTH = int(os.getenv("INBOX_MAX_LENGTH", 100))

DEFAULT_TITLE = "Untitled"
