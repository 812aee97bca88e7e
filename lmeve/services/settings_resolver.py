"""Server settings: masking and the override -> stored -> default cascade"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from lmeve.config import settings
from lmeve.exceptions import StorageException
from lmeve.storage.files import FileStorage, SETTINGS_FILE

logger = logging.getLogger(__name__)

MASK = "***"
SECRET_FIELDS = frozenset({"password", "clientSecret", "sudoPassword", "smtpPassword"})


@dataclass
class DatabaseConfig:
    """Resolved MySQL connection parameters"""

    host: str
    port: int
    username: str
    password: str
    database: str


@dataclass
class EsiConfig:
    """Resolved EVE SSO application credentials"""

    client_id: str
    client_secret: str
    callback_url: str
    user_agent: str


def resolve_settings_root(document: Any) -> Dict[str, Any]:
    """Unwrap ``{settings: {...}}`` documents; direct documents pass through"""
    if not isinstance(document, dict):
        return {}
    inner = document.get("settings")
    if isinstance(inner, dict):
        return inner
    return document


def is_blank(value: Any) -> bool:
    return value is None or value == ""


def mask_secrets(document: Any) -> Any:
    """Copy of the document with every non-empty secret replaced by the mask"""
    if isinstance(document, dict):
        masked = {}
        for key, value in document.items():
            if key in SECRET_FIELDS and isinstance(value, str) and value != "":
                masked[key] = MASK
            else:
                masked[key] = mask_secrets(value)
        return masked
    if isinstance(document, list):
        return [mask_secrets(item) for item in document]
    return document


def restore_masked_secrets(incoming: Any, existing: Any) -> Any:
    """
    Replace masked secrets in an incoming document with the stored values

    A secret posted as the mask means "keep what is stored". When nothing is
    stored at that path the secret becomes empty.
    """
    if isinstance(incoming, dict):
        existing_map = existing if isinstance(existing, dict) else {}
        restored = {}
        for key, value in incoming.items():
            if key in SECRET_FIELDS and value == MASK:
                previous = existing_map.get(key)
                restored[key] = previous if isinstance(previous, str) and previous != MASK else ""
            else:
                restored[key] = restore_masked_secrets(value, existing_map.get(key))
        return restored
    if isinstance(incoming, list):
        existing_list = existing if isinstance(existing, list) else []
        return [
            restore_masked_secrets(item, existing_list[i] if i < len(existing_list) else None)
            for i, item in enumerate(incoming)
        ]
    return incoming


class SettingsResolver:
    """Resolves effective configuration for a request"""

    def __init__(self, storage: FileStorage):
        self.storage = storage

    def load(self) -> Optional[Dict[str, Any]]:
        """Stored settings document as saved, or None"""
        document = self.storage.read_json(SETTINGS_FILE)
        return document if isinstance(document, dict) else None

    def root(self) -> Dict[str, Any]:
        """Unwrapped stored settings; empty when nothing is stored or readable"""
        try:
            return resolve_settings_root(self.load())
        except StorageException as e:
            logger.warning(f"Stored settings unreadable, using defaults: {str(e)}")
            return {}

    def save(self, incoming: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace the stored document, keeping secrets that were posted masked

        Args:
            incoming: Document as posted by the dashboard

        Returns:
            The document that was persisted
        """
        def merge(current):
            document = copy.deepcopy(incoming)
            incoming_root = resolve_settings_root(document)
            restored_root = restore_masked_secrets(incoming_root, resolve_settings_root(current))
            if incoming_root is document:
                return restored_root
            document["settings"] = restored_root
            return document

        return self.storage.update_json(SETTINGS_FILE, merge)

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.root().get(name)
        return section if isinstance(section, dict) else {}

    @staticmethod
    def _pick(overrides: Mapping[str, Any], keys, stored: Mapping[str, Any], stored_key: str, default: Any, secret: bool = False) -> Any:
        for key in keys:
            value = overrides.get(key)
            if secret and value == MASK:
                continue
            if not is_blank(value):
                return value
        value = stored.get(stored_key)
        if secret and value == MASK:
            value = None
        if not is_blank(value):
            return value
        return default

    def database_config(self, overrides: Optional[Mapping[str, Any]] = None) -> DatabaseConfig:
        """Resolve MySQL connection parameters for a request"""
        overrides = overrides or {}
        stored = self._section("database")
        port = self._pick(overrides, ["port"], stored, "port", settings.DEFAULT_DB_PORT)
        try:
            port = int(port)
        except (TypeError, ValueError):
            port = settings.DEFAULT_DB_PORT
        return DatabaseConfig(
            host=str(self._pick(overrides, ["host"], stored, "host", settings.DEFAULT_DB_HOST)),
            port=port,
            username=str(self._pick(overrides, ["username"], stored, "username", "")),
            password=str(self._pick(overrides, ["password"], stored, "password", "", secret=True)),
            database=str(self._pick(overrides, ["database"], stored, "database", settings.DEFAULT_DATABASE)),
        )

    def esi_config(self, overrides: Optional[Mapping[str, Any]] = None) -> EsiConfig:
        """Resolve SSO application credentials for a request"""
        overrides = overrides or {}
        stored = self._section("esi")
        return EsiConfig(
            client_id=str(self._pick(overrides, ["clientId"], stored, "clientId", "")),
            client_secret=str(self._pick(overrides, ["clientSecret"], stored, "clientSecret", "", secret=True)),
            callback_url=str(self._pick(overrides, ["redirectUri", "callbackUrl"], stored, "callbackUrl", "")),
            user_agent=str(self._pick(overrides, ["userAgent"], stored, "userAgent", settings.USER_AGENT)),
        )
