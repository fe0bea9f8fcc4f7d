import pytest
from cryptography.fernet import Fernet

from secretsanta.security import (
    decrypt_assignment_recipient,
    encrypt_assignment_recipient,
    generate_game_code,
    tokens_match,
)


def test_tokens_match():
    assert tokens_match("abc", "abc")
    assert not tokens_match("abc", "abd")
    assert not tokens_match("", "")
    assert not tokens_match(None, "abc")


def test_game_code_is_six_digits():
    for _ in range(50):
        code = generate_game_code()
        assert len(code) == 6 and code.isdigit()


def test_explicit_encryption_key_is_used(app):
    key = Fernet.generate_key()
    app.config["ASSIGNMENT_ENC_KEY"] = key.decode()

    token = encrypt_assignment_recipient("bob")

    assert Fernet(key).decrypt(token.encode()).decode() == "bob"
    assert decrypt_assignment_recipient(token) == "bob"


def test_tampered_ciphertext_is_rejected(app):
    token = encrypt_assignment_recipient("bob")
    with pytest.raises(ValueError):
        decrypt_assignment_recipient(token[:-4] + "AAAA")
