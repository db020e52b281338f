"""Settings resolution for the upload channel tools."""

from upload_channel.config_manager.config import ConfigManager
from upload_channel.config_manager.helpers import parse_bytes
from upload_channel.config_manager.settings import UploadSettings

__all__ = ["ConfigManager", "UploadSettings", "parse_bytes"]
