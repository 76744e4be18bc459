# import needed library
import os
from dotenv import load_dotenv

# Load the .env file
load_dotenv()

# Postgres configuration keys
POSTGRES_CONFIG = {
    "host": os.getenv("POSTGRES_HOST", "localhost"),
    "port": os.getenv("POSTGRES_PORT", "5432"),
    "database": os.getenv("POSTGRES_DB", "postgres"),
    "user": os.getenv("POSTGRES_USER"),
    "password": os.getenv("POSTGRES_PASSWORD")
}

# partitioned table and the rolling window kept around now()
# values stay raw here, partitioner.settings validates them before any planning
PARTITION_CONFIG = {
    "table": os.getenv("PARTITION_TABLE"),
    "column": os.getenv("PARTITION_COLUMN"),
    "schema": os.getenv("PARTITION_SCHEMA", "public"),
    "bucket_duration": os.getenv("PARTITION_BUCKET_DURATION", "1"),
    "bucket_unit": os.getenv("PARTITION_BUCKET_UNIT", "days"),
    "past_count": os.getenv("PARTITION_PAST_COUNT", "1"),
    "future_count": os.getenv("PARTITION_FUTURE_COUNT", "2"),
    "retention_duration": os.getenv("PARTITION_RETENTION_DURATION", "30"),
    "retention_unit": os.getenv("PARTITION_RETENTION_UNIT", "days"),
}

# logging. empty LOG_DIR keeps logs on the console only
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
