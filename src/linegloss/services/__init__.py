"""Settings and telemetry services."""

from .settings import SecretVault, Settings, SettingsStore, redact_secret
from .telemetry import emit, register_event_listener, unregister_event_listener

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "redact_secret",
    "emit",
    "register_event_listener",
    "unregister_event_listener",
]
