"""Connector credentials repository

Stores the link between a local user and an external AI chat provider.

SECURITY:
- Access tokens, refresh tokens and API keys are encrypted with Fernet
- The key comes from PSLANG_ENCRYPTION_KEY
- Decrypted secrets never leave this module except on ConnectorCredential
- One credential per (user_id, provider), enforced by lookup-then-upsert
"""

from __future__ import annotations

import json
import uuid
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from pslang.config import encryption_key
from pslang.observability.logging import get_logger
from pslang.storage import BaseRepository
from pslang.storage.models import (
    ConnectorCredential,
    ConnectorSettings,
    ConnectorStatus,
    Provider,
    parse_dt,
    utc_now,
)

logger = get_logger(__name__)


class CredentialEncryptionError(Exception):
    """Raised when credential encryption/decryption fails"""


class ConnectorRepository(BaseRepository):
    """
    Repository for encrypted connector credentials.

    Every write goes through _find() first so a (user_id, provider) pair never
    ends up with two rows.
    """

    def __init__(self, cipher: Fernet | None = None) -> None:
        super().__init__("connector_credentials")
        self._cipher = cipher or self._get_cipher()

    def _get_cipher(self) -> Fernet:
        """
        Raises:
            ValueError: If PSLANG_ENCRYPTION_KEY is not set or malformed
        """
        key = encryption_key()

        if not key:
            raise ValueError(
                "PSLANG_ENCRYPTION_KEY environment variable must be set. "
                "Generate one with: python -c "
                "'from cryptography.fernet import Fernet; "
                "print(Fernet.generate_key().decode())'"
            )

        try:
            return Fernet(key.encode())
        except ValueError as e:
            raise ValueError(f"Invalid encryption key format: {e}") from e

    def _encrypt(self, secret: str | None) -> str | None:
        if secret is None:
            return None
        try:
            return self._cipher.encrypt(secret.encode()).decode()
        except (TypeError, ValueError) as e:
            logger.error("Failed to encrypt connector secret: %s", type(e).__name__)
            raise CredentialEncryptionError("Encryption failed") from e

    def _decrypt(self, encrypted: str | None) -> str | None:
        if encrypted is None:
            return None
        try:
            return self._cipher.decrypt(encrypted.encode()).decode()
        except InvalidToken as e:
            logger.error("Failed to decrypt connector secret (key rotated or data corrupted)")
            raise CredentialEncryptionError("Decryption failed") from e

    def _to_model(self, row: Any) -> ConnectorCredential:
        return ConnectorCredential(
            id=row["id"],
            user_id=row["user_id"],
            provider=Provider(row["provider"]),
            status=ConnectorStatus(row["status"]),
            access_token=self._decrypt(row["encrypted_access_token"]),
            refresh_token=self._decrypt(row["encrypted_refresh_token"]),
            api_key=self._decrypt(row["encrypted_api_key"]),
            settings=ConnectorSettings(**json.loads(row["settings"] or "{}")),
            connected_at=parse_dt(row["connected_at"]),
            last_sync_at=parse_dt(row["last_sync_at"]),
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
        )

    def _find(self, user_id: str, provider: Provider) -> Any:
        return self.query_one(
            "SELECT * FROM connector_credentials WHERE user_id = ? AND provider = ?",
            (user_id, provider.value),
        )

    def get_credential(self, user_id: str, provider: Provider) -> ConnectorCredential | None:
        """
        Load the credential for (user_id, provider).

        Raises:
            CredentialEncryptionError: If stored secrets cannot be decrypted
        """
        row = self._find(user_id, provider)
        return self._to_model(row) if row else None

    def list_for_user(self, user_id: str) -> list[ConnectorCredential]:
        rows = self.query_all(
            "SELECT * FROM connector_credentials WHERE user_id = ? ORDER BY provider",
            (user_id,),
        )
        return [self._to_model(row) for row in rows]

    def connect(
        self,
        user_id: str,
        provider: Provider,
        *,
        access_token: str | None = None,
        refresh_token: str | None = None,
        api_key: str | None = None,
        settings: ConnectorSettings | None = None,
    ) -> ConnectorCredential:
        """
        Store a connected credential, overwriting any prior one for the pair.

        Raises:
            ValueError: If neither an access token nor an API key is given
            CredentialEncryptionError: If encryption fails

        Side Effects:
            - Inserts or updates one row in connector_credentials
            - Clears last_sync_at on a brand new row only
        """
        if not (access_token or api_key):
            raise ValueError("a connected credential needs an access token or api key")

        now = utc_now().isoformat()
        fields = {
            "encrypted_access_token": self._encrypt(access_token),
            "encrypted_refresh_token": self._encrypt(refresh_token),
            "encrypted_api_key": self._encrypt(api_key),
            "status": ConnectorStatus.CONNECTED.value,
            "settings": (settings or ConnectorSettings()).model_dump_json(),
            "connected_at": now,
            "updated_at": now,
        }

        existing = self._find(user_id, provider)
        if existing:
            self.patch(existing["id"], fields)
            logger.info("Updated %s connector for user: %s", provider.value, user_id)
        else:
            self.insert(
                {
                    "id": str(uuid.uuid4()),
                    "user_id": user_id,
                    "provider": provider.value,
                    "last_sync_at": None,
                    "created_at": now,
                    **fields,
                }
            )
            logger.info("Stored new %s connector for user: %s", provider.value, user_id)

        credential = self.get_credential(user_id, provider)
        assert credential is not None
        return credential

    def set_status(self, user_id: str, provider: Provider, status: ConnectorStatus) -> bool:
        """
        Move an existing credential to a new status.

        Disconnecting also clears every stored secret, since a disconnected
        credential must not be usable for sync.

        Returns:
            True if a credential existed

        Side Effects:
            - Updates one row in connector_credentials
        """
        existing = self._find(user_id, provider)
        if not existing:
            return False

        fields: dict[str, Any] = {"status": status.value, "updated_at": utc_now().isoformat()}
        if status == ConnectorStatus.DISCONNECTED:
            fields.update(
                encrypted_access_token=None,
                encrypted_refresh_token=None,
                encrypted_api_key=None,
            )
        self.patch(existing["id"], fields)
        logger.info("Connector %s for user %s is now %s", provider.value, user_id, status.value)
        return True

    def disconnect(self, user_id: str, provider: Provider) -> bool:
        return self.set_status(user_id, provider, ConnectorStatus.DISCONNECTED)

    def mark_expired(self, user_id: str, provider: Provider) -> bool:
        return self.set_status(user_id, provider, ConnectorStatus.EXPIRED)

    def update_last_sync(self, user_id: str, provider: Provider) -> None:
        """
        Record that a sync finished. Concurrent syncs race; last writer wins.

        Side Effects:
            - Updates last_sync_at in connector_credentials
        """
        now = utc_now().isoformat()
        self.execute(
            """
            UPDATE connector_credentials
            SET last_sync_at = ?, updated_at = ?
            WHERE user_id = ? AND provider = ?
            """,
            (now, now, user_id, provider.value),
        )
