"""Service layer helpers (settings, telemetry, spreadsheet client)."""

from .google_auth import ServiceAccountCredentials, ServiceAccountTokenSource
from .settings import ContextPolicySettings, SecretVault, Settings, SettingsStore, redact_secret
from .sheets import ResourceClient, ResourceHandle, SheetsClient, SheetsClientSettings

__all__ = [
    "ContextPolicySettings",
    "ResourceClient",
    "ResourceHandle",
    "SecretVault",
    "ServiceAccountCredentials",
    "ServiceAccountTokenSource",
    "Settings",
    "SettingsStore",
    "SheetsClient",
    "SheetsClientSettings",
    "redact_secret",
]
