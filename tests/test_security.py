import string

import pytest

from security import (
    generate_verification_token,
    hash_password,
    verify_password,
)


def test_hash_is_salted_and_verifiable():
    first = hash_password("mockPassword123")
    second = hash_password("mockPassword123")

    assert first != "mockPassword123"
    assert first != second
    assert verify_password("mockPassword123", first)
    assert verify_password("mockPassword123", second)


def test_verify_rejects_wrong_password():
    hashed = hash_password("mockPassword123")
    assert not verify_password("mockPassword124", hashed)


@pytest.mark.parametrize("hashed", [None, "", "not-a-known-hash"])
def test_verify_fails_closed_without_a_usable_hash(hashed):
    assert verify_password("mockPassword123", hashed) is False


def test_hash_rejects_empty_password():
    with pytest.raises(ValueError):
        hash_password("")


def test_verification_token_is_64_hex_chars():
    token = generate_verification_token()
    assert len(token) == 64
    assert set(token) <= set(string.hexdigits.lower())


def test_verification_tokens_are_not_reused():
    tokens = {generate_verification_token() for _ in range(50)}
    assert len(tokens) == 50
