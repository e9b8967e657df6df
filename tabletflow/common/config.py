"""
Configuration settings for the tabletflow connector and development store.
"""

# Master settings
MASTER_HOST = "localhost"
MASTER_PORT = 7051
DEFAULT_MASTER_ADDRESS = f"{MASTER_HOST}:{MASTER_PORT}"

# Tablet settings
DEFAULT_NUM_BUCKETS = 3  # Number of hash buckets (tablets) for new tables
DEFAULT_REPLICATION_FACTOR = 3  # Number of replicas for each tablet
TABLET_SERVER_PORT_START = 7050  # Simulated tablet servers use ports starting from this number
SCAN_BATCH_SIZE = 100  # Rows returned per scanner round-trip

# Storage settings
STORE_DB_EXTENSION = ".json"

# Client settings
CLIENT_TIMEOUT = 5.0  # seconds
CLIENT_RETRY_COUNT = 3  # Number of retries for failed operations
