"""Content fingerprinting for Apple Wallet passes.

A pass is fingerprinted the same way a .pkpass manifest is built: every file
(pass.json, localized strings, images) is digested with SHA-1, the resulting
name -> digest mapping is serialized as JSON, and that serialization is
digested again. Signing artifacts and archive metadata never enter the
fingerprint, so two builds of the same content always hash identically.
"""

import hashlib
import json
from collections.abc import Iterable

MANIFEST_FILENAME = "manifest.json"
SIGNATURE_FILENAME = "signature"

# Files that are derived from the others and never part of the fingerprint
EXCLUDED_FILES = frozenset({MANIFEST_FILENAME, SIGNATURE_FILENAME})


def file_digest(data: bytes) -> str:
    """Return the hex-encoded SHA-1 digest of a file's content."""
    return hashlib.sha1(data).hexdigest()


def build_manifest(files: Iterable[tuple[str, bytes]]) -> dict[str, str]:
    """Map each file name to the digest of its content.

    The mapping keeps the order in which files are given.

    Args:
        files: (name, content) pairs.

    Returns:
        Ordered mapping of file name to SHA-1 hex digest.
    """
    manifest: dict[str, str] = {}
    for filename, content in files:
        if filename in EXCLUDED_FILES:
            continue
        manifest[filename] = file_digest(content)
    return manifest


def serialize_manifest(manifest: dict[str, str]) -> bytes:
    """Serialize a manifest deterministically (compact JSON, insertion order)."""
    return json.dumps(manifest, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_pass_hash(
    pass_json: bytes,
    localizations: Iterable[tuple[str, bytes]],
    assets: Iterable[tuple[str, bytes]],
) -> str:
    """Compute the content fingerprint of a pass.

    The descriptor comes first, then localization files, then assets, each
    group in the order produced by the caller.

    Args:
        pass_json: Serialized pass.json.
        localizations: (path, content) pairs of localized strings files.
        assets: (path, content) pairs of images.

    Returns:
        Hex-encoded SHA-1 digest of the serialized manifest.
    """
    files: list[tuple[str, bytes]] = [("pass.json", pass_json)]
    files.extend(localizations)
    files.extend(assets)
    return file_digest(serialize_manifest(build_manifest(files)))
