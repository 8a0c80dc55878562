APP_NAME = "jfp"

VERSION = "1.0.0"

# Bump on any structural change to the store; older files are migrated on open.
SCHEMA_VERSION = 2

REGISTRY_URL = "https://jeffreysprompts.com/api/prompts"

DEFAULT_CACHE_TTL = 3600

DEFAULT_TIMEOUT_MS = 2000

BUSY_TIMEOUT_MS = 5000

# bm25 column weights, in prompts_fts column order.
SEARCH_WEIGHTS = (
    ("id", 5.0),
    ("title", 3.0),
    ("description", 2.0),
    ("content", 1.0),
    ("tags_text", 2.0),
)

MIN_SEARCH_LIMIT = 1
MAX_SEARCH_LIMIT = 100

META_KEY = "_meta"
