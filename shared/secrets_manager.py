"""
Secrets management for the StatEnv gateway.

Upstream credentials are resolved by name through a ``SecretStore``. The
gateway only ever calls ``get(name)``; which store backs it is decided at
startup.
"""

import os
import json
import base64
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, runtime_checkable
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from shared.logging import get_logger

logger = get_logger("shared.secrets")


@runtime_checkable
class SecretStore(Protocol):
    """Read-only access to named secrets."""

    def get(self, name: str) -> Optional[str]:
        ...


class StaticSecretStore:
    """Secrets held in memory; used for tests and embedding."""

    def __init__(self, secrets: Optional[Mapping[str, str]] = None):
        self._secrets: Dict[str, str] = dict(secrets or {})

    def get(self, name: str) -> Optional[str]:
        return self._secrets.get(name) or None


class EnvSecretStore:
    """Secrets read from the process environment under their own names."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, name: str) -> Optional[str]:
        return self._environ.get(name) or None


class SecretsManager:
    """
    Environment-first secret store with an encrypted JSON file fallback.
    """

    def __init__(self, master_key: Optional[str] = None, secrets_file: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the secrets manager.

        Args:
            master_key: Master key for encryption/decryption of the secrets file
            secrets_file: Path of the encrypted secrets file
            environ: Environment mapping (defaults to os.environ)
        """
        self._env = EnvSecretStore(environ)
        self.master_key = master_key
        self.secrets_file = secrets_file
        self._fernet = self._create_fernet() if master_key else None

    def _create_fernet(self) -> Fernet:
        """
        Create a Fernet cipher instance.

        Returns:
            Fernet cipher instance
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b'statenv_gateway_salt',
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(self.master_key.encode()))
        return Fernet(key)

    def _require_fernet(self) -> Fernet:
        if self._fernet is None:
            raise ValueError("Master key is required for encrypted secrets")
        return self._fernet

    def encrypt_secret(self, secret: str) -> str:
        """
        Encrypt a secret.

        Args:
            secret: Secret to encrypt

        Returns:
            Encrypted secret
        """
        return self._require_fernet().encrypt(secret.encode()).decode()

    def decrypt_secret(self, encrypted_secret: str) -> str:
        """
        Decrypt a secret.

        Args:
            encrypted_secret: Encrypted secret

        Returns:
            Decrypted secret
        """
        return self._require_fernet().decrypt(encrypted_secret.encode()).decode()

    def _read_file(self) -> Dict[str, str]:
        if not self.secrets_file or not os.path.exists(self.secrets_file):
            return {}
        try:
            with open(self.secrets_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read secrets file", path=self.secrets_file, error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, name: str) -> Optional[str]:
        """
        Get a secret by name.

        Args:
            name: Secret name, e.g. ``MYBLOG_WEATHER_KEY``

        Returns:
            Secret value or None
        """
        secret = self._env.get(name)
        if secret:
            return secret

        encrypted = self._read_file().get(name)
        if not encrypted or self._fernet is None:
            return None
        try:
            return self.decrypt_secret(encrypted)
        except Exception as e:
            # Never log the ciphertext or the key
            logger.error("Failed to decrypt secret", secret=name, error=type(e).__name__)
            return None

    def set_secret(self, name: str, value: str) -> None:
        """
        Encrypt a secret and persist it to the secrets file.

        Args:
            name: Secret name
            value: Secret value
        """
        if not self.secrets_file:
            raise ValueError("secrets_file is required to store secrets")

        secrets = self._read_file()
        secrets[name] = self.encrypt_secret(value)

        with open(self.secrets_file, 'w', encoding='utf-8') as f:
            json.dump(secrets, f, indent=2)
        logger.info("Secret saved", secret=name, path=self.secrets_file)

    def list_secrets(self) -> List[str]:
        """
        List the names stored in the secrets file.
        """
        return sorted(self._read_file().keys())

    def missing_secrets(self, names: Iterable[str]) -> List[str]:
        """
        Return the subset of ``names`` that cannot be resolved.
        """
        return [name for name in names if not self.get(name)]
