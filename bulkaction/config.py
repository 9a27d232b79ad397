# bulkaction/config.py
"""
Configuration management for bulk insert sessions.
Supports YAML configuration files with connections, entity to table mappings,
optional password encryption and global settings.
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .database import register_user_drivers
from .defaults import settings

try:
    import yaml
except ImportError:
    raise ImportError("PyYAML is required. Install with: pip install PyYAML")

try:
    from cryptography.fernet import Fernet
    HAS_CRYPTO = True
except ImportError:
    HAS_CRYPTO = False

try:
    import keyring
    HAS_KEYRING = True
except ImportError:
    HAS_KEYRING = False

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_VAR = 'BULKACTION_ENCRYPTION_KEY'


class ConfigManager:
    """
    Manage bulkaction configuration from YAML files.

    Configuration File Structure
    ----------------------------
    ::

        # bulkaction.yml
        settings:
          default_batch_size: 5000

        connections:
          warehouse:
            type: postgres
            host: localhost
            database: sales
            user: loader
            encrypted_password: gAAAAABh...

        tables:
          myapp.models.Order: sales.orders   # dotted module.Class path
          Customer: sales.customers          # or bare class name

    Configuration Locations
    -----------------------
    1. File specified in config_file parameter
    2. ``./bulkaction.yml`` / ``./bulkaction.yaml``
    3. ``~/.config/bulkaction.yml`` / ``~/.config/bulkaction.yaml``

    Notes
    -----
    * Connections require a 'type' (postgres, oracle, sqlserver, mysql, sqlite) or 'driver'
    * Encrypted passwords require the BULKACTION_ENCRYPTION_KEY environment variable
      or a key stored in the system keyring
    * Passwords can reference environment variables with ${VAR_NAME} syntax
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize config manager and load configuration.

        Raises
        ------
        FileNotFoundError
            If no config file found in any search location
        ValueError
            If config file is invalid or malformed
        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        self._fernet = None

        settings.update(self.config.get('settings', {}))
        if self.config.get('drivers'):
            register_user_drivers(self.config['drivers'])

    @staticmethod
    def _find_config_file(config_file: Optional[str]) -> Path:
        """Find the configuration file."""
        if config_file:
            path = Path(config_file)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {config_file}")
            return path

        candidates = [
            Path("bulkaction.yml"),
            Path("bulkaction.yaml"),
            Path.home() / ".config" / "bulkaction.yml",
            Path.home() / ".config" / "bulkaction.yaml"
        ]
        for candidate in candidates:
            if candidate.exists():
                return candidate

        raise FileNotFoundError(
            "No config file found. Looked in: " +
            ", ".join(str(c) for c in candidates)
        )

    def _load_config(self) -> Dict[str, Any]:
        """Load and validate configuration file."""
        try:
            with open(self.config_file, 'r') as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to load config file {self.config_file}: {e}")

        if not isinstance(config, dict):
            raise ValueError(f"Invalid config file {self.config_file}.")

        for name, conn in config.get('connections', {}).items():
            if not isinstance(conn, dict) or ('type' not in conn and 'driver' not in conn):
                raise ValueError(f"Invalid connection '{name}' in {self.config_file}: 'type' or 'driver' is required")

        for section in ('tables', 'settings', 'drivers'):
            if not isinstance(config.get(section, {}), dict):
                raise ValueError(f"Invalid config file {self.config_file}: '{section}' must be a dictionary")

        logger.info(f"Loaded config from {self.config_file}")
        return config

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value from the config (supports dot notation like 'logging.level').
        """
        value = self.config.get('settings', {})
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def _get_encryption_key(self) -> bytes:
        """Get encryption key from environment variable or keyring."""
        key_str = os.environ.get(ENCRYPTION_KEY_VAR)
        if key_str:
            logger.debug(f"Using {ENCRYPTION_KEY_VAR} from environment")
            return key_str.encode()

        if HAS_KEYRING:
            try:
                key_str = keyring.get_password('bulkaction', 'encryption_key')
            except Exception as e:
                logger.warning(f"Keyring access failed: {e}")
                key_str = None
            if key_str:
                logger.debug("Using encryption key from keyring")
                return key_str.encode()

        if not HAS_CRYPTO:
            raise ValueError("Encryption not available. Install cryptography package to enable encryption.")
        raise ValueError(f"Encryption key not found. Set the {ENCRYPTION_KEY_VAR} environment variable.")

    def _get_fernet(self) -> 'Fernet':
        """Get or create Fernet instance for encryption/decryption."""
        if self._fernet is None:
            self._fernet = Fernet(self._get_encryption_key())
        return self._fernet

    def decrypt_password(self, encrypted_password: str) -> str:
        """Decrypt an encrypted password."""
        try:
            return self._get_fernet().decrypt(encrypted_password.encode()).decode()
        except Exception as e:
            raise ValueError(f"Failed to decrypt password: {e}")

    def encrypt_password(self, password: str) -> str:
        """Encrypt a password for storage."""
        try:
            return self._get_fernet().encrypt(password.encode()).decode()
        except Exception as e:
            raise ValueError(f"Failed to encrypt password: {e}")

    def get_connection_config(self, name: str) -> Dict[str, Any]:
        """Get configuration for a named connection, with the password resolved."""
        connections = self.config.get('connections', {})

        if name not in connections:
            raise ValueError(
                f"Connection '{name}' not found in config. "
                f"Available connections: {list(connections.keys())}"
            )

        config = connections[name].copy()

        if 'encrypted_password' in config:
            config['password'] = self.decrypt_password(config.pop('encrypted_password'))

        password = config.get('password')
        if isinstance(password, str) and password.startswith('${') and password.endswith('}'):
            env_var = password[2:-1]
            config['password'] = os.environ.get(env_var)
            if config['password'] is None:
                raise ValueError(f"Environment variable {env_var} not set")

        return config

    def list_connections(self) -> list:
        """List all available connection names."""
        return list(self.config.get('connections', {}).keys())

    def get_table_mappings(self) -> Dict[str, str]:
        """Entity path (or bare class name) to destination table name."""
        return dict(self.config.get('tables', {}))


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def set_config_file(config_file: str) -> None:
    """Set the configuration file to use globally."""
    global _config_manager
    _config_manager = ConfigManager(config_file)


def get_config_manager(config_file: Optional[str] = None) -> ConfigManager:
    """ConfigManager for config_file, or the global one (loaded on first use)."""
    global _config_manager
    if config_file:
        return ConfigManager(config_file)
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_setting(key: str, default: Any = None, config_file: Optional[str] = None) -> Any:
    """
    Get a setting value from configuration, falling back to the built-in defaults.

    Example:
        level = get_setting('logging.level', 'INFO')
    """
    try:
        config_mgr = get_config_manager(config_file)
    except FileNotFoundError:
        config_mgr = None

    value = config_mgr.get_setting(key, None) if config_mgr else None
    if value is not None:
        return value

    value = settings
    for k in key.split('.'):
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value


def generate_encryption_key() -> str:
    """
    Generate a random Fernet key. Store it in the BULKACTION_ENCRYPTION_KEY
    environment variable (or the system keyring under 'bulkaction') to decrypt
    ``encrypted_password`` entries.
    """
    if not HAS_CRYPTO:
        raise ValueError("Encryption not available. Install cryptography package to enable encryption.")
    return Fernet.generate_key().decode()


def encrypt_password(password: str, encryption_key: Optional[str] = None) -> str:
    """
    Encrypt a password for an ``encrypted_password`` config entry.

    Args:
        password: Password to encrypt
        encryption_key: Optional encryption key. If None, uses BULKACTION_ENCRYPTION_KEY / keyring
    """
    if encryption_key:
        return Fernet(encryption_key.encode()).encrypt(password.encode()).decode()
    temp_config = ConfigManager.__new__(ConfigManager)
    temp_config._fernet = None
    return temp_config.encrypt_password(password)
