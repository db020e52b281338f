"""Constants for the resumable upload channel."""

import os
from pathlib import Path

MIN_CHUNK_SIZE = 256 * 1024  # Protocol granularity, chunks are multiples of 256 KiB
DEFAULT_CHUNK_SIZE = 8 * MIN_CHUNK_SIZE

HTTP_TIMEOUT_SECONDS = float(os.getenv("UPLOAD_CHANNEL_HTTP_TIMEOUT", "60"))
RESUME_INCOMPLETE_CODE = 308
FINAL_SUCCESS_CODES = {200, 201}

CONFIG_DIR = Path.home() / ".upload_channel"
SETTINGS_FILE = "settings.yaml"
STATE_DIR_NAME = "states"
CONFIG_ENCODING = "utf-8"
