from __future__ import annotations

from .payload_codec import (
    VIDSRC_CC_MANIFEST_KEY,
    aes_cbc_encrypt,
    decode_manifest,
    derive_id_key,
    encode_id,
    encode_manifest,
    rc4,
)

__all__ = [
    "VIDSRC_CC_MANIFEST_KEY",
    "aes_cbc_encrypt",
    "decode_manifest",
    "derive_id_key",
    "encode_id",
    "encode_manifest",
    "rc4",
]
