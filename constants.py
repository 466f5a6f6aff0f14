import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# "redis" or "memory" (single process only, state is lost on restart)
STORE_BACKEND = os.getenv("STORE_BACKEND", "redis")
STORE_NAMESPACE = os.getenv("STORE_NAMESPACE", "mindmap-collab")
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", 5.0))

# "copy": every joiner forks the host snapshot into its own branch
# "shared": all users read and write the host snapshot
JOIN_POLICY = os.getenv("JOIN_POLICY", "copy")

MAX_OPERATIONS = int(os.getenv("MAX_OPERATIONS", 100))
OPERATIONS_KEEP = int(os.getenv("OPERATIONS_KEEP", 50))

COLOR_PALETTE_SIZE = int(os.getenv("COLOR_PALETTE_SIZE", 6))
DEFAULT_REGION = os.getenv("DEFAULT_REGION", "bj")
DEFAULT_ROOM_NAME = "Untitled room"
DEFAULT_ROOM_METHOD = "polling"

SNAPSHOT_NODE_FIELD = os.getenv("SNAPSHOT_NODE_FIELD", "nodeMap")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() == "true"
