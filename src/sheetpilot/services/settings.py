"""Persisted configuration for the spreadsheet agent.

Settings live in ``~/.sheetpilot/settings.json``. The reasoning engine API key
and the Sheets credentials are stored encrypted with a Fernet key kept next
to the settings file; everything else is plain JSON. Values can be overridden
per run from the command line (``overrides=``) and from ``SHEETPILOT_*``
environment variables, in that order.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "ContextPolicySettings",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

SETTINGS_HOME = Path.home() / ".sheetpilot"
SETTINGS_VERSION = 1
SECRET_FIELDS: tuple[str, ...] = ("api_key", "sheets_access_token", "sheets_service_account_json")
_CIPHERTEXT_SUFFIX = "_ciphertext"


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Environment variable -> (settings field, parser). Parsers raise ValueError on bad input.
_ENVIRONMENT: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "SHEETPILOT_API_KEY": ("api_key", str),
    "SHEETPILOT_BASE_URL": ("base_url", str),
    "SHEETPILOT_MODEL": ("model", str),
    "SHEETPILOT_ORGANIZATION": ("organization", str),
    "SHEETPILOT_TEMPERATURE": ("temperature", float),
    "SHEETPILOT_REQUEST_TIMEOUT": ("request_timeout", float),
    "SHEETPILOT_MAX_RETRIES": ("max_retries", int),
    "SHEETPILOT_MAX_TOOL_ITERATIONS": ("max_tool_iterations", int),
    "SHEETPILOT_MAX_CONTEXT_TOKENS": ("max_context_tokens", int),
    "SHEETPILOT_RESPONSE_TOKEN_RESERVE": ("response_token_reserve", int),
    "SHEETPILOT_DEFAULT_CONVERSATION_ID": ("default_conversation_id", str),
    "SHEETPILOT_SHEETS_BASE_URL": ("sheets_base_url", str),
    "SHEETPILOT_SHEETS_ACCESS_TOKEN": ("sheets_access_token", str),
    "SHEETPILOT_SHEETS_SERVICE_ACCOUNT_JSON": ("sheets_service_account_json", str),
    "SHEETPILOT_DEBUG_LOGGING": ("debug_logging", _parse_bool),
}


@dataclass(slots=True)
class ContextPolicySettings:
    """Context budget knobs for history compaction.

    ``summary_budget_tokens`` bounds how much of the discarded history is sent
    to the summarizer; ``summary_reserve_tokens`` is the share of the prompt
    budget held back for the synthetic summary message.
    """

    prompt_budget_override: int | None = None
    response_reserve_override: int | None = None
    summary_budget_tokens: int = 50_000
    summary_reserve_tokens: int = 2_000


@dataclass(slots=True)
class Settings:
    """Runtime configuration for the agent, its engine and the Sheets client."""

    # Reasoning engine
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    organization: str | None = None
    temperature: float = 0.2
    default_headers: dict[str, str] = field(default_factory=dict)

    # Transport
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0

    # Agent loop and context budget
    max_tool_iterations: int = 10
    max_context_tokens: int = 180_000
    response_token_reserve: int = 4_096
    default_conversation_id: str = "default"
    context_policy: ContextPolicySettings = field(default_factory=ContextPolicySettings)

    # Google Sheets
    sheets_base_url: str = "https://sheets.googleapis.com/v4/"
    sheets_access_token: str = ""
    # Service account key file contents; takes precedence over the access token.
    sheets_service_account_json: str = ""

    debug_logging: bool = False


class SecretVault:
    """Fernet encryption for secrets, tagged ``fernet:<token>`` on disk."""

    name = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (SETTINGS_HOME / "settings.key")
        self._cipher: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._fernet().encrypt(secret.encode("utf-8"))
        return f"{self.name}:{token.decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        """Return the plaintext for ``token``.

        Raises:
            ValueError: the token has a foreign prefix or fails verification.
        """

        if not token:
            return ""
        backend, separator, body = token.partition(":")
        if backend != self.name or not separator or not body:
            raise ValueError(f"Unsupported secret token prefix: {backend!r}")
        try:
            plaintext = self._fernet().decrypt(body.encode("ascii"))
        except InvalidToken as exc:
            raise ValueError("Secret could not be decrypted with the current key") from exc
        return plaintext.decode("utf-8")

    def _fernet(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(self._read_or_create_key())
        return self._cipher

    def _read_or_create_key(self) -> bytes:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        descriptor = os.open(self._key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(descriptor, "wb") as handle:
            handle.write(key)
        LOGGER.info("Created settings encryption key at %s", self._key_path)
        return key


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON with encrypted secrets."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or (SETTINGS_HOME / "settings.json")
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Return stored settings with command-line then environment overrides applied.

        Plaintext secrets and payloads from another version are rewritten in
        the current format as a side effect.
        """

        payload = self._read_payload()
        settings, needs_rewrite = self._decode(payload)
        if needs_rewrite:
            try:
                self.save(settings)
            except OSError as exc:
                LOGGER.warning("Could not rewrite settings at %s: %s", self._path, exc)

        if overrides:
            settings = _with_overrides(settings, overrides, source="command line")
        return _with_overrides(settings, _environment_overrides(), source="environment")

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` atomically through a temporary sibling file."""

        document = self._encode(settings)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_name(f"{self._path.name}.tmp")
        staging.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Saved settings to %s", self._path)
        return self._path

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    def _encode(self, settings: Settings) -> Dict[str, Any]:
        document = asdict(settings)
        for name in SECRET_FIELDS:
            secret = document.pop(name, "")
            if secret:
                document[name + _CIPHERTEXT_SUFFIX] = self._vault.encrypt(secret)
        document["version"] = SETTINGS_VERSION
        document["secret_backend"] = self._vault.name
        return document

    def _decode(self, payload: Dict[str, Any]) -> tuple[Settings, bool]:
        if not payload:
            return Settings(), False

        needs_rewrite = payload.get("version") != SETTINGS_VERSION
        secrets: Dict[str, str] = {}
        for name in SECRET_FIELDS:
            ciphertext = payload.get(name + _CIPHERTEXT_SUFFIX)
            plaintext = payload.get(name)
            if ciphertext:
                try:
                    secrets[name] = self._vault.decrypt(ciphertext)
                except ValueError as exc:
                    LOGGER.warning("Ignoring stored %s: %s", name, exc)
            elif plaintext:
                LOGGER.info("Found plaintext %s in %s; it will be encrypted", name, self._path)
                secrets[name] = str(plaintext)
                needs_rewrite = True

        known = {item.name for item in fields(Settings)} - set(SECRET_FIELDS)
        values = {key: value for key, value in payload.items() if key in known}
        policy = values.pop("context_policy", None)
        try:
            settings = Settings(**values, **secrets)
        except TypeError as exc:
            LOGGER.warning("Ignoring malformed settings in %s: %s", self._path, exc)
            settings = Settings(**secrets)
        if isinstance(policy, Mapping):
            try:
                settings.context_policy = ContextPolicySettings(**policy)
            except TypeError:
                LOGGER.warning("Ignoring malformed context_policy settings: %s", policy)
        return settings, needs_rewrite

    def _read_payload(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not hold a JSON object", self._path)
            return {}
        return payload


def _environment_overrides() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for variable, (name, parse) in _ENVIRONMENT.items():
        raw = os.environ.get(variable)
        if raw is None:
            continue
        try:
            values[name] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: not a valid %s", variable, raw, getattr(parse, "__name__", "value"))
    return values


def _with_overrides(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    known = {item.name for item in fields(Settings)}
    accepted = {key: value for key, value in overrides.items() if key in known and value is not None}
    if not accepted:
        return settings
    LOGGER.debug("Applying %s overrides: %s", source, sorted(accepted))
    return replace(settings, **accepted)


def redact_secret(value: str) -> str:
    """Mask a secret for logs, keeping at most its first three and last four characters."""

    secret = (value or "").strip()
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:3]}...{secret[-4:]}"
