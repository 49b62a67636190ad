"""Shared helpers used by the bundle pipeline."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Iterable, Optional

_ALGORITHMS = {
    "SHA-256": "sha256",
    "SHA-1": "sha1",
    "MD5": "md5",
}

DEFAULT_HASH_LENGTH = 16


def compute_hash(content: bytes, algorithm: str = "SHA-256", length: int = DEFAULT_HASH_LENGTH) -> str:
    """Return a truncated hex digest of ``content``.

    Callers must hash the exact bytes that will be served, after any text
    rewriting. Sixteen hex characters keep 64 bits of the digest.
    """

    try:
        name = _ALGORITHMS[algorithm]
    except KeyError:
        raise ValueError(f"Unsupported hash algorithm '{algorithm}'") from None
    return hashlib.new(name, content).hexdigest()[:length]


def compute_string_hash(content: str, algorithm: str = "SHA-256", length: int = DEFAULT_HASH_LENGTH) -> str:
    """Hash the UTF-8 encoding of ``content``."""

    return compute_hash(content.encode("utf-8"), algorithm, length)


def compute_combined_hash(
    contents: Iterable[bytes], algorithm: str = "SHA-256", length: int = DEFAULT_HASH_LENGTH
) -> str:
    """Hash several byte strings as if they were concatenated."""

    return compute_hash(b"".join(contents), algorithm, length)


def compute_sha256(path: Path) -> str:
    """Return the SHA-256 checksum for a file."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def write_json(payload: Any, path: Path) -> None:
    """Write JSON payload to disk with canonical formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def write_text(path: Path, content: str, *, newline: Optional[str] = None) -> None:
    """Write text to file ensuring parent directories exist."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8", newline=newline)


def write_bytes(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
