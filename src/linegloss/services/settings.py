"""User settings: defaults, JSON persistence, env overrides and API key encryption."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = ["Settings", "SettingsStore", "SecretVault", "redact_secret"]

LOGGER = logging.getLogger(__name__)

_SETTINGS_DIR = Path.home() / ".linegloss"
_SETTINGS_VERSION = 1
_CIPHERTEXT_FIELD = "api_key_ciphertext"
_TOKEN_PREFIX = "fernet"


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on", "debug"}


# env var -> (settings field, converter)
_ENV_FIELDS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "LINEGLOSS_API_KEY": ("api_key", str),
    "LINEGLOSS_BASE_URL": ("base_url", str),
    "LINEGLOSS_MODEL": ("model", str),
    "LINEGLOSS_DEBUG_LOGGING": ("debug_logging", _parse_bool),
    "LINEGLOSS_RENDER_PENDING": ("render_pending", _parse_bool),
    "LINEGLOSS_REQUEST_TIMEOUT": ("request_timeout", float),
    "LINEGLOSS_TEMPERATURE": ("temperature", float),
    "LINEGLOSS_MAX_RETRIES": ("max_retries", int),
}


def _default_exclusions() -> list[str]:
    return ["extension-output", "extension-log", ".git", "node_modules", ".linegloss"]


@dataclass(slots=True)
class Settings:
    """Everything a user can configure.

    Model access (``base_url``, ``api_key``, ``model`` and the request knobs)
    feeds :class:`~linegloss.ai.client.ClientSettings`. The remaining fields
    steer annotation: where records are cached, which paths are ignored,
    generation pacing and how annotations are rendered.
    """

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_tokens: int = 8_192
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    cache_dir_name: str = ".linegloss"
    excluded_path_fragments: list[str] = field(default_factory=_default_exclusions)
    generation_defer_seconds: float = 0.0
    min_call_interval: float = 0.0
    render_pending: bool = False
    comment_prefix: str = "# >"
    default_headers: dict[str, str] = field(default_factory=dict)
    debug_logging: bool = False


_FIELD_NAMES = frozenset(item.name for item in fields(Settings))


class SecretVault:
    """Fernet encryption for the API key.

    The key file is created on first use, readable by the owner only.
    """

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._cipher().encrypt(secret.encode("utf-8"))
        return f"{_TOKEN_PREFIX}:{token.decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, body = token.partition(":")
        if prefix != _TOKEN_PREFIX or not body:
            raise ValueError(f"Unrecognised secret token {prefix!r}")
        try:
            return self._cipher().decrypt(body.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Secret token cannot be decrypted with the current key") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._key())
        return self._fernet

    def _key(self) -> bytes:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        fd = os.open(self._key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(key)
        LOGGER.debug("Created settings key at %s", self._key_path)
        return key


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON.

    Precedence when loading, lowest first: defaults, the file, runtime
    ``overrides``, then ``LINEGLOSS_*`` environment variables.
    """

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or (_SETTINGS_DIR / "settings.json")
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        settings = self._from_payload(self._read())
        if overrides:
            settings = _merge(settings, overrides, source="runtime")
        return _merge(settings, _environment_values(), source="environment")

    def save(self, settings: Settings) -> Path:
        data = asdict(settings)
        secret = data.pop("api_key", "")
        if secret:
            data[_CIPHERTEXT_FIELD] = self._vault.encrypt(secret)
        data["version"] = _SETTINGS_VERSION

        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_name(self._path.name + ".tmp")
        staging.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Saved settings to %s", self._path)
        return self._path

    def _read(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Ignoring malformed settings file %s: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Ignoring settings file %s: expected a JSON object", self._path)
            return {}
        return data

    def _from_payload(self, payload: Mapping[str, Any]) -> Settings:
        known = {key: value for key, value in payload.items() if key in _FIELD_NAMES and key != "api_key"}
        try:
            settings = Settings(**known)
        except TypeError as exc:
            LOGGER.warning("Settings file %s has invalid values: %s", self._path, exc)
            settings = Settings()
        ciphertext = payload.get(_CIPHERTEXT_FIELD)
        if not ciphertext:
            return settings
        try:
            return replace(settings, api_key=self._vault.decrypt(ciphertext))
        except ValueError as exc:
            LOGGER.warning("Stored API key ignored: %s", exc)
            return settings


def _environment_values() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for env_name, (field_name, convert) in _ENV_FIELDS.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            values[field_name] = convert(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: not a valid %s", env_name, raw, convert.__name__)
    return values


def _merge(settings: Settings, values: Mapping[str, Any], *, source: str) -> Settings:
    accepted = {key: value for key, value in values.items() if key in _FIELD_NAMES and value is not None}
    if not accepted:
        return settings
    LOGGER.debug("Settings from %s: %s", source, sorted(accepted))
    return replace(settings, **accepted)


def redact_secret(value: str) -> str:
    """Mask *value* for display, keeping four characters at each end of long secrets."""

    secret = (value or "").strip()
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}…{secret[-4:]}"
