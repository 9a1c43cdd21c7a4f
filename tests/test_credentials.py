"""Tests for provider API key storage, encryption and resolution."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from cryptography.fernet import Fernet
from sqlalchemy.dialects import postgresql

from finder.core.credential_cipher import FernetCredentialCipher, generate_encryption_key, get_cipher
from finder.core.errors import NotFound, SearchError, ValidationError
from finder.models.api_key import ApiKey
from finder.services.credentials import CredentialService

# ── Helpers ────────────────────────────────────────────────────────


@pytest.fixture
def cipher() -> FernetCredentialCipher:
    return FernetCredentialCipher(Fernet.generate_key().decode())


def _key(cipher, service="google_places", key_name="default", plain="AIza-secret-key", **fields) -> ApiKey:
    return ApiKey(
        principal_id=7,
        service=service,
        key_name=key_name,
        key_value=cipher.encrypt(plain) if plain else "not-a-token",
        is_active=True,
        usage_count=fields.pop("usage_count", 0),
        **fields,
    )


def _scalars(mock_db, rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    mock_db.execute.return_value = result


# ── Cipher ─────────────────────────────────────────────────────────


class TestCipher:
    def test_round_trip(self, cipher):
        token = cipher.encrypt("AIza-secret-key")
        assert token != "AIza-secret-key"
        assert cipher.decrypt(token) == "AIza-secret-key"

    def test_foreign_token_is_none(self, cipher):
        other = FernetCredentialCipher(generate_encryption_key())
        assert cipher.decrypt(other.encrypt("x" * 12)) is None

    def test_get_cipher_without_key(self):
        with patch("finder.config.get_settings") as mock_settings:
            mock_settings.return_value = SimpleNamespace(api_key_encryption_key="")
            assert get_cipher() is None

    def test_get_cipher_with_invalid_key(self):
        with patch("finder.config.get_settings") as mock_settings:
            mock_settings.return_value = SimpleNamespace(api_key_encryption_key="not-base64")
            assert get_cipher() is None

    def test_get_cipher_with_key(self):
        with patch("finder.config.get_settings") as mock_settings:
            mock_settings.return_value = SimpleNamespace(api_key_encryption_key=generate_encryption_key())
            assert isinstance(get_cipher(), FernetCredentialCipher)


# ── Reading keys ───────────────────────────────────────────────────


class TestResolve:
    @pytest.mark.asyncio
    async def test_list_skips_undecryptable(self, mock_db, cipher):
        _scalars(mock_db, [_key(cipher), _key(cipher, service="yelp", key_name="broken", plain=None)])
        service = CredentialService(cipher=cipher)

        keys = await service.list_keys(mock_db, 7)

        assert [(k.service, k.key_name) for k in keys] == [("google_places", "default")]
        assert "key_value" not in keys[0].model_dump()

    @pytest.mark.asyncio
    async def test_resolve_records_use(self, mock_db, cipher, now):
        key = _key(cipher, usage_count=3)
        _scalars(mock_db, [key])
        service = CredentialService(cipher=cipher, clock=lambda: now)

        plain = await service.resolve_key(mock_db, 7, "google_places")

        assert plain == "AIza-secret-key"
        assert key.usage_count == 4
        assert key.last_used_at == now

    @pytest.mark.asyncio
    async def test_resolve_falls_through_broken_keys(self, mock_db, cipher):
        _scalars(mock_db, [_key(cipher, key_name="old", plain=None), _key(cipher, key_name="new", plain="second-key-12")])

        plain = await CredentialService(cipher=cipher).resolve_key(mock_db, 7, "google_places")

        assert plain == "second-key-12"

    @pytest.mark.asyncio
    async def test_resolve_without_keys(self, mock_db, cipher):
        _scalars(mock_db, [])
        assert await CredentialService(cipher=cipher).resolve_key(mock_db, 7, "yelp") is None

    def test_shared_key(self):
        with patch("finder.services.credentials.get_settings") as mock_settings:
            mock_settings.return_value = SimpleNamespace(google_places_api_key="shared-g", yelp_api_key="")
            service = CredentialService(cipher=None)
            assert service.shared_key("google_places") == "shared-g"
            assert service.shared_key("yelp") is None
            assert service.shared_key("openstreetmap") is None


# ── Writing keys ───────────────────────────────────────────────────


class TestSave:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("service_name", "key_name", "key_value"),
        [
            ("openstreetmap", "default", "long-enough-key"),
            ("bing", "default", "long-enough-key"),
            ("yelp", "   ", "long-enough-key"),
            ("yelp", "default", "short"),
        ],
    )
    async def test_rejects_invalid_input(self, mock_db, cipher, service_name, key_name, key_value):
        with pytest.raises(ValidationError):
            await CredentialService(cipher=cipher).save_key(mock_db, 7, service_name, key_name, key_value)
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_cipher(self, mock_db):
        with (
            patch("finder.services.credentials.get_cipher", return_value=None),
            pytest.raises(SearchError, match="encryption"),
        ):
            await CredentialService().save_key(mock_db, 7, "yelp", "default", "long-enough-key")

    @pytest.mark.asyncio
    async def test_upserts_encrypted_token(self, mock_db, cipher):
        saved = _key(cipher, service="yelp")
        result = MagicMock()
        result.scalar_one.return_value = saved
        mock_db.execute.return_value = result

        row = await CredentialService(cipher=cipher).save_key(mock_db, 7, "yelp", " default ", "long-enough-key")

        assert row is saved
        stmt = mock_db.execute.call_args.args[0]
        compiled = stmt.compile(dialect=postgresql.dialect())
        assert "ON CONFLICT ON CONSTRAINT uq_api_keys_principal_service_name DO UPDATE" in str(compiled)
        assert compiled.params["key_name"] == "default"
        token = compiled.params["key_value"]
        assert token != "long-enough-key"
        assert cipher.decrypt(token) == "long-enough-key"

    @pytest.mark.asyncio
    async def test_delete(self, mock_db, cipher):
        result = MagicMock()
        result.rowcount = 1
        mock_db.execute.return_value = result

        await CredentialService(cipher=cipher).delete_key(mock_db, 7, "yelp", "default")
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_missing(self, mock_db, cipher):
        result = MagicMock()
        result.rowcount = 0
        mock_db.execute.return_value = result

        with pytest.raises(NotFound):
            await CredentialService(cipher=cipher).delete_key(mock_db, 7, "yelp", "nope")
