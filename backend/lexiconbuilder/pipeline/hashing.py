from __future__ import annotations

import hashlib


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str) -> str:
    return sha256_bytes(text.encode("utf-8"))


def short_hash(*parts: object, length: int = 16) -> str:
    """Stable id: the first ``length`` hex chars of sha256 over newline-joined parts."""
    return sha256_text("\n".join(str(p) for p in parts))[:length]
