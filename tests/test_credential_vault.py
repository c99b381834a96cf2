"""
Tests for channel credential encryption
"""

import base64
import json

import pytest

from roomsync.services.credential_vault import CredentialVault, IV_SIZE

from conftest import TEST_SECRET


class TestCredentialVault:
    def test_round_trip(self, vault):
        credentials = {"api_key": "secret-key", "property_id": "prop-1"}

        blob = vault.encrypt(credentials)

        assert "secret-key" not in blob
        assert vault.decrypt(blob) == credentials

    def test_fresh_iv_per_encryption(self, vault):
        credentials = {"api_key": "same"}

        first, second = vault.encrypt(credentials), vault.encrypt(credentials)

        assert first != second
        assert base64.b64decode(first)[:IV_SIZE] != base64.b64decode(second)[:IV_SIZE]

    def test_legacy_plain_json_is_read_as_is(self, vault):
        """Credentials stored before encryption was enabled"""
        legacy = json.dumps({"username": "hotel", "password": "pw"})
        assert vault.decrypt(legacy) == {"username": "hotel", "password": "pw"}

    def test_unreadable_blob_yields_empty_dict(self, vault):
        assert vault.decrypt("not a credential blob") == {}
        assert vault.decrypt("") == {}
        assert vault.decrypt(json.dumps(["a", "list"])) == {}

    def test_other_secret_cannot_read(self):
        blob = CredentialVault(TEST_SECRET).encrypt({"api_key": "k"})
        assert CredentialVault("a-completely-different-secret-value!").decrypt(blob) != {"api_key": "k"}

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            CredentialVault("")
