DEFAULT_DB_PATH = "walpurgis.db"
DEFAULT_TIMEZONE = "UTC"

# Archive intake
DEFAULT_SESSION_LIFETIME_SECONDS = 300
DEFAULT_MEDIA_ONLY_DELAY_SECONDS = 15
DEFAULT_LOOKBEHIND_LIMIT = 5
DEFAULT_MODAL_TIMEOUT_SECONDS = 300

# Watched channels (comma separated ids). Empty means every guild text channel.
DEFAULT_ARCHIVE_CHANNEL_IDS = ""

DEFAULT_DIALOGUE_FILENAME = "dialogue.yml"
DEFAULT_MIGRATIONS_DIRNAME = "migrations"

COMMAND_PREFIX = "!"
