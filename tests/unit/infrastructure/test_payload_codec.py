"""Tests for the identifier and manifest codecs."""

from __future__ import annotations

import base64

import pytest

from streamhop.domain.exceptions import PayloadDecodeError
from streamhop.infrastructure.codec import (
    VIDSRC_CC_MANIFEST_KEY,
    aes_cbc_encrypt,
    decode_manifest,
    derive_id_key,
    encode_id,
    encode_manifest,
    rc4,
)

_PLAYLIST = (
    "#EXTM3U\n"
    "#EXT-X-STREAM-INF:BANDWIDTH=1280000,RESOLUTION=1280x720\n"
    "720/index.m3u8\n"
)

# "#EXTM3U\na.m3u8" under the RC4 key "Secret": the plaintext XORed with the
# keystream of the "Attack at dawn" vector below (04d46b053ca87b594172302aec9b).
_PINNED_PLAYLIST = "#EXTM3U\na.m3u8"
_PINNED_CIPHERTEXT = "J5EzUXGbLlMgXF0ZmaM="

# ---------------------------------------------------------------------------
# rc4
# ---------------------------------------------------------------------------


class TestRc4:
    """Published RC4 reference vectors."""

    @pytest.mark.parametrize(
        ("key", "plaintext", "ciphertext_hex"),
        [
            (b"Key", b"Plaintext", "bbf316e8d940af0ad3"),
            (b"Wiki", b"pedia", "1021bf0420"),
            (b"Secret", b"Attack at dawn", "45a01f645fc35b383552544b9bf5"),
        ],
    )
    def test_reference_vectors(
        self, key: bytes, plaintext: bytes, ciphertext_hex: str
    ) -> None:
        assert rc4(key, plaintext).hex() == ciphertext_hex

    def test_symmetric(self) -> None:
        data = b"any payload"
        assert rc4(b"k", rc4(b"k", data)) == data

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValueError):
            rc4(b"", b"data")


# ---------------------------------------------------------------------------
# decode_manifest
# ---------------------------------------------------------------------------


class TestDecodeManifest:
    def test_plaintext_is_noop(self) -> None:
        assert decode_manifest(_PLAYLIST) == _PLAYLIST

    def test_idempotent(self) -> None:
        once = decode_manifest(_PLAYLIST)
        assert decode_manifest(once) == once

    def test_round_trip_with_provider_key(self) -> None:
        obfuscated = encode_manifest(_PLAYLIST, VIDSRC_CC_MANIFEST_KEY)
        assert not obfuscated.startswith("#EXTM3U")
        assert decode_manifest(obfuscated, VIDSRC_CC_MANIFEST_KEY) == _PLAYLIST

    def test_pinned_ciphertext_decodes(self) -> None:
        assert decode_manifest(_PINNED_CIPHERTEXT, "Secret") == _PINNED_PLAYLIST

    def test_pinned_ciphertext_encodes(self) -> None:
        assert encode_manifest(_PINNED_PLAYLIST, "Secret") == _PINNED_CIPHERTEXT

    def test_fixture_is_base64_of_rc4(self) -> None:
        obfuscated = encode_manifest(_PLAYLIST)
        raw = base64.b64decode(obfuscated)
        assert rc4(VIDSRC_CC_MANIFEST_KEY.encode("latin-1"), raw) == (
            _PLAYLIST.encode()
        )

    def test_tolerates_whitespace_and_missing_padding(self) -> None:
        obfuscated = encode_manifest(_PLAYLIST).rstrip("=")
        wrapped = "\n".join(
            obfuscated[i : i + 20] for i in range(0, len(obfuscated), 20)
        )
        assert decode_manifest(wrapped) == _PLAYLIST

    def test_wrong_key_is_decode_error(self) -> None:
        obfuscated = encode_manifest(_PLAYLIST, "some-other-key")
        with pytest.raises(PayloadDecodeError):
            decode_manifest(obfuscated, VIDSRC_CC_MANIFEST_KEY)

    def test_not_base64(self) -> None:
        with pytest.raises(PayloadDecodeError, match="not base64"):
            decode_manifest("<html>blocked</html>")

    def test_empty_payload(self) -> None:
        with pytest.raises(PayloadDecodeError, match="empty"):
            decode_manifest("   ")


# ---------------------------------------------------------------------------
# encode_id
# ---------------------------------------------------------------------------


class TestEncodeId:
    def test_deterministic(self) -> None:
        assert encode_id("tt0133093", "user-1") == encode_id("tt0133093", "user-1")

    def test_depends_on_key_material(self) -> None:
        assert encode_id("tt0133093", "user-1") != encode_id("tt0133093", "user-2")

    def test_url_safe_without_padding(self) -> None:
        token = encode_id("tt0133093", "user-1")
        assert "=" not in token
        assert "+" not in token
        assert "/" not in token

    def test_single_block_length(self) -> None:
        # 9 bytes pad to one 16-byte block -> 22 base64 chars without padding.
        assert len(encode_id("tt0133093", "k")) == 22

    def test_decrypts_back(self) -> None:
        import hashlib

        from cryptography.hazmat.primitives import padding
        from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

        token = encode_id("12345", "material")
        raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
        key = hashlib.sha256(b"material").digest()
        decryptor = Cipher(algorithms.AES(key), modes.CBC(bytes(16))).decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        assert unpadder.update(padded) + unpadder.finalize() == b"12345"

    def test_pinned_token(self) -> None:
        # SHA-256("abc") as key, "tt0133093" PKCS#7-padded with seven 0x07 bytes.
        key = bytes.fromhex(
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )
        block = aes_cbc_encrypt(key, b"tt0133093" + b"\x07" * 7)
        expected = base64.urlsafe_b64encode(block).rstrip(b"=").decode("ascii")
        assert encode_id("tt0133093", "abc") == expected


class TestIdCipherStages:
    """FIPS 180 / FIPS 197 / SP 800-38A vectors for each stage of ``encode_id``."""

    def test_key_derivation(self) -> None:
        assert derive_id_key("abc").hex() == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )
        assert derive_id_key("").hex() == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_aes256_single_block(self) -> None:
        # A zero IV makes the first CBC block plain AES.
        block = aes_cbc_encrypt(
            bytes(range(32)), bytes.fromhex("00112233445566778899aabbccddeeff")
        )
        assert block.hex() == "8ea2b7ca516745bfeafc49904b496089"

    def test_aes256_zero_iv_first_block(self) -> None:
        key = bytes.fromhex(
            "603deb1015ca71be2b73aef0857d77811f352c073b6108d72d9810a30914dff4"
        )
        block = aes_cbc_encrypt(key, bytes.fromhex("6bc1bee22e409f96e93d7e117393172a"))
        assert block.hex() == "f3eed1bdb5d2a03c064b5a7e3db181f8"

    def test_aes256_cbc_chaining(self) -> None:
        key = bytes.fromhex(
            "603deb1015ca71be2b73aef0857d77811f352c073b6108d72d9810a30914dff4"
        )
        plaintext = bytes.fromhex(
            "6bc1bee22e409f96e93d7e117393172aae2d8a571e03ac9c9eb76fac45af8e51"
        )
        ciphertext = aes_cbc_encrypt(key, plaintext, bytes(range(16)))
        assert ciphertext.hex() == (
            "f58c4c04d6e5f1ba779eabfb5f7bfbd69cfc4e967edb808d679f777bc6702c7d"
        )
