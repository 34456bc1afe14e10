"""Test credential vault encryption, masking and password hashing."""

import pytest

from zhanwen_admin.errors import CryptoError
from zhanwen_admin.services.vault import CredentialVault, mask_secret


@pytest.fixture
def local_vault() -> CredentialVault:
    return CredentialVault("unit-test-key", hash_rounds=4)


class TestCredentialEncryption:
    """Test encrypt/decrypt of provider credentials."""

    def test_decrypt_returns_original_secret(self, local_vault):
        # Arrange
        secret = "sk-abcdef1234567890"

        # Act
        ciphertext = local_vault.encrypt(secret)

        # Assert
        assert ciphertext != secret
        assert secret not in ciphertext
        assert local_vault.decrypt(ciphertext) == secret

    def test_same_configuration_reads_other_instances_ciphertext(self):
        writer = CredentialVault("shared-key", salt="shared-salt")
        reader = CredentialVault("shared-key", salt="shared-salt")

        assert reader.decrypt(writer.encrypt("sk-shared")) == "sk-shared"

    def test_different_key_cannot_decrypt(self, local_vault):
        ciphertext = local_vault.encrypt("sk-secret-value")

        with pytest.raises(CryptoError):
            CredentialVault("another-key").decrypt(ciphertext)

    @pytest.mark.parametrize("ciphertext", ["", "not-a-fernet-token", "gAAAAAB-garbage"])
    def test_malformed_ciphertext_raises(self, local_vault, ciphertext):
        with pytest.raises(CryptoError):
            local_vault.decrypt(ciphertext)

    def test_empty_plaintext_is_a_failure(self, local_vault):
        ciphertext = local_vault.encrypt("")

        with pytest.raises(CryptoError, match="empty"):
            local_vault.decrypt(ciphertext)

    def test_missing_master_key_raises(self):
        vault = CredentialVault("")

        assert vault.is_configured is False
        with pytest.raises(CryptoError, match="not configured"):
            vault.encrypt("sk-anything")


class TestPasswordHashing:
    """Test bcrypt hashing of administrator passwords."""

    def test_verify_accepts_correct_password(self, local_vault):
        password_hash = local_vault.hash_password("correct horse")

        assert password_hash != "correct horse"
        assert local_vault.verify_password("correct horse", password_hash) is True
        assert local_vault.verify_password("wrong horse", password_hash) is False

    def test_hashes_are_salted(self, local_vault):
        assert local_vault.hash_password("same") != local_vault.hash_password("same")

    def test_malformed_hash_raises(self, local_vault):
        with pytest.raises(CryptoError):
            local_vault.verify_password("password", "not-a-bcrypt-hash")


class TestMaskSecret:
    @pytest.mark.parametrize(
        "secret,expected",
        [
            ("sk-abcdef1234567890", "sk-a****7890"),
            ("123456789", "1234****6789"),
            ("12345678", "****"),
            ("short", "****"),
            ("", "****"),
            (None, "****"),
        ],
    )
    def test_mask(self, secret, expected):
        assert mask_secret(secret) == expected
