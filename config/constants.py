"""System constants and default values."""

# Network configuration
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5432
MAX_PENDING_CONNECTIONS = 5
MAX_LINE_LENGTH = 256

# Default user used by LIST/BALANCE when no user id is given
DEFAULT_USER_ID = 1

# Seed user created when the user table is empty
DEFAULT_SEED_FIRST_NAME = "Robby"
DEFAULT_SEED_LAST_NAME = "Bobby"
DEFAULT_SEED_USER_NAME = "Rob_bob"
DEFAULT_SEED_PASSWORD = "password123"
DEFAULT_SEED_CASH_BALANCE = "100.00"

# Repository configuration
DEFAULT_REPOSITORY_TYPE = "sqlite"
DEFAULT_DATA_DIR = "ledger_data"
DEFAULT_DB_FILE = "stocks.db"
USERS_CSV_NAME = "users.csv"
HOLDINGS_CSV_NAME = "holdings.csv"

# Backup configuration
DEFAULT_BACKUP_DIR = "backups"

# Logging configuration
LOG_FILE = "ledger_server.log"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Display precision for the wire protocol
DISPLAY_DECIMAL_PLACES = 2

# Version information
VERSION = "1.0.0"
