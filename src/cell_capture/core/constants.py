"""Wire-level constants shared across the pipeline."""

# --- Notebook metadata keys ---
FRONTMATTER_KEY = "runme.dev/frontmatter"
FRONTMATTER_PARSED_KEY = "runme.dev/frontmatterParsed"
CACHE_ID_KEY = "runme.dev/cacheId"
CELL_ID_ANNOTATION = "runme.dev/id"

# --- Output mime types ---
STDOUT_MIME = "application/vnd.code.notebook.stdout"

# --- Messaging ---
RESPONSE_MESSAGE_TYPE = "platformApiResponse"
DISPLAY_SHARE_DISABLED = {"displayShare": False}
AUTH_TIMEOUT_WARNING = (
    "Saving timed out. Sign in to save your cells. Please try again."
)

# --- Host environment ---
LOOPBACK_HOSTNAMES = frozenset({"localhost", "127.0.0.1"})
DEPLOYMENT_SERVICE_ENV = "K_SERVICE"

# --- Telemetry events ---
EVENT_SAVE = "app.save"
EVENT_ERROR = "app.error"
EVENT_CANCELLED = "app.cancelled"
