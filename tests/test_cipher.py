import pytest

from uki.cipher import Cipher, parse_cipher


def test_empty_spec_is_plain():
    cipher = parse_cipher("")
    assert cipher.plain is True
    assert cipher.key == b""


def test_plain_leaves_data_untouched():
    cipher = Cipher()
    payload = b"hello world"
    assert cipher.encrypt(payload) == payload
    assert cipher.decrypt(payload) == payload


def test_xor_spec_sets_key():
    cipher = parse_cipher("xor:secret")
    assert cipher.plain is False
    assert cipher.key == b"secret"


def test_xor_spec_splits_on_first_colon_only():
    cipher = parse_cipher("xor:a:b")
    assert cipher.key == b"a:b"


def test_xor_single_byte_pinned():
    cipher = Cipher(b"\xff")
    assert cipher.encrypt(b"\x00\x0f") == b"\xff\xf0"


def test_xor_of_zeros_yields_cycled_key():
    cipher = parse_cipher("xor:secret")
    assert cipher.encrypt(bytes(8)) == b"secretse"


def test_xor_round_trip():
    cipher = parse_cipher("xor:secret")
    payload = bytes(range(256)) * 3
    encrypted = cipher.encrypt(payload)
    assert encrypted != payload
    assert cipher.decrypt(encrypted) == payload


def test_encrypt_and_decrypt_are_the_same_transform():
    cipher = parse_cipher("xor:token")
    payload = b"some datagram payload"
    assert cipher.encrypt(payload) == cipher.decrypt(payload)


def test_xor_preserves_length():
    cipher = parse_cipher("xor:placeholder")
    for size in (0, 1, 10, 11, 4096):
        assert len(cipher.encrypt(bytes(size))) == size


def test_xor_keeps_leading_zero_bytes():
    cipher = Cipher(b"\x01")
    payload = b"\x01\x01\x05"
    assert cipher.decrypt(cipher.encrypt(payload)) == payload
    assert cipher.encrypt(payload)[:2] == bytes(2)


def test_accepts_bytearray_and_memoryview():
    cipher = parse_cipher("xor:secret")
    payload = b"abcdef"
    assert cipher.encrypt(bytearray(payload)) == cipher.encrypt(payload)
    assert cipher.encrypt(memoryview(payload)) == cipher.encrypt(payload)


def test_missing_colon_is_rejected():
    with pytest.raises(ValueError, match="needs two parts"):
        parse_cipher("xor")


def test_missing_xor_key_is_rejected():
    with pytest.raises(ValueError, match="xor key should be provided"):
        parse_cipher("xor:")


def test_unknown_method_is_rejected():
    with pytest.raises(ValueError, match="aes encryption is not supported"):
        parse_cipher("aes:secret")