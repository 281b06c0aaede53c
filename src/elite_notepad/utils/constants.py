"""Application-wide constants."""

APP_NAME = "Elite Notepad"
APP_VERSION = "1.0.0"

# Tables mirrored to the remote store
SYNC_TABLES = ("teams", "members")

# Queue operations
SYNC_OPERATIONS = ("insert", "update", "delete")

# Meta keys
META_LAST_SYNC = "last_sync"

# Standard teams hold at most this many people, admin included
MAX_MEMBERS = 8

# Subscription-type tags used for team logos and member subscriptions
SUBSCRIPTION_TYPES = ["chatgpt", "gemini", "perplexity", "youtube", "canva"]

# A standard subscription lasts this many calendar days after joining
EXPIRY_DAYS = 30

DEFAULT_TEAM_NAME = "My Elite Team"
DEFAULT_ADMIN_EMAIL = "admin@example.com"

# Columns the remote schema may not know about, per table.  These are the
# only columns the queue processor will strip when the remote reports an
# unknown column.
OPTIONAL_COLUMNS = {
    "teams": ("logo", "last_backup", "is_yearly", "is_plus"),
    "members": (
        "telegram",
        "two_fa",
        "twofa",
        "twofa_secret",
        "password",
        "e_pass",
        "g_pass",
        "paid_amount",
        "pending_amount",
        "subscriptions",
        "is_pushed",
        "active_team_id",
    ),
}
