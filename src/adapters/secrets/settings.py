"""
Settings-backed secret store - Implements SecretStore protocol.

Secrets come from the environment (or .env) through the application
settings, so a vault agent that injects environment variables needs no
extra adapter.
"""

from src.config.settings import Settings


class SettingsSecretStore:
    """Reads named secrets from Settings fields; unknown names resolve to None."""

    _NAMES = ("qualifier_secret_key", "activation_pre_shared_key")

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_secret(self, name: str) -> str | None:
        if name not in self._NAMES:
            return None
        secret = getattr(self._settings, name)
        return secret.get_secret_value() if secret is not None else None
