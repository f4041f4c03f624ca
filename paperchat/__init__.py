"""Top-level package for the PaperChat document-search client."""

from .config import ConfigManager, get_user_config_dir, load_client_settings  # noqa: F401
from .logging import setup_logging  # noqa: F401
