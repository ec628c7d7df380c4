import os
import string

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# "memory" keeps everything in this process, "redis" uses REDIS_HOST/REDIS_PORT
ROOM_STORE_BACKEND = os.getenv("ROOM_STORE_BACKEND", "memory").lower()

SESSION_TIMEOUT_MINUTES = int(os.getenv("SESSION_TIMEOUT_MINUTES", 20))
SESSION_TIMEOUT_NS = SESSION_TIMEOUT_MINUTES * 60 * 1_000_000_000

# 0 disables the background sweeper; sweeps still run on every mutating call
SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", 0))

# Frontend URL used for ?refID= share links. Falls back to the request's base URL.
SHARE_BASE_URL = os.getenv("SHARE_BASE_URL", None)

CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 6
SESSION_ID_LENGTH = 12
MAX_CODE_ATTEMPTS = 10
