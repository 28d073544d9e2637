"""Process-lifetime cache for API keys."""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

from docrag.core.config import Settings, settings
from docrag.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def settings_secret_loader(config: Settings) -> Callable[[str], Optional[str]]:
    """
    Build a loader that reads a secret file first and falls back to settings.

    A secret named ``openai_api_key`` is looked up as ``{secrets_dir}/openai_api_key``
    and then as the ``openai_api_key`` setting.

    Args:
        config: Settings to read from.

    Returns:
        Loader callable.
    """

    def load(name: str) -> Optional[str]:
        if config.secrets_dir:
            path = Path(config.secrets_dir) / name
            if path.is_file():
                return path.read_text(encoding="utf-8").strip()
        return getattr(config, name, None) or None

    return load


class SecretCache:
    """
    Lazily loads each secret once and keeps it for the lifetime of the process.

    There is no invalidation: rotating a secret requires restarting the
    process. Safe to share between threads; a secret is loaded at most once.
    """

    def __init__(self, loader: Optional[Callable[[str], Optional[str]]] = None) -> None:
        self._loader = loader or settings_secret_loader(settings)
        self._values: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> str:
        """
        Return a secret, loading it on first use.

        Args:
            name: Secret name.

        Returns:
            Secret value.

        Raises:
            ConfigurationError: If the secret is not available.
        """
        with self._lock:
            if name not in self._values:
                value = self._loader(name)
                if not value:
                    raise ConfigurationError(f"Secret {name} not found")
                self._values[name] = value
                logger.info(f"Loaded secret {name}")
            return self._values[name]

    def get_optional(self, name: str) -> Optional[str]:
        """Return a secret or None when it is not configured."""
        try:
            return self.get(name)
        except ConfigurationError:
            return None
