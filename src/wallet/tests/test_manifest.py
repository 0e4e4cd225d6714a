"""Tests for wallet/apple/manifest.py."""

import hashlib
import json

from wallet.apple.manifest import build_manifest, compute_pass_hash, file_digest, serialize_manifest

PASS_JSON = b'{"formatVersion":1,"serialNumber":"001"}'
LOCALIZATIONS = [("en.lproj/pass.strings", b'"hello" = "Hello";\n')]
ASSETS = [("icon.png", b"icon-bytes"), ("logo.png", b"logo-bytes")]


class TestBuildManifest:
    def test_digests_every_file_in_order(self) -> None:
        manifest = build_manifest([("b.png", b"b"), ("a.png", b"a")])

        assert list(manifest) == ["b.png", "a.png"]
        assert manifest["a.png"] == hashlib.sha1(b"a").hexdigest()

    def test_skips_signing_artifacts(self) -> None:
        manifest = build_manifest([("pass.json", b"{}"), ("manifest.json", b"{}"), ("signature", b"sig")])

        assert list(manifest) == ["pass.json"]

    def test_serialization_is_compact_and_ordered(self) -> None:
        serialized = serialize_manifest({"z": "1", "a": "2"})

        assert serialized == b'{"z":"1","a":"2"}'
        assert json.loads(serialized) == {"z": "1", "a": "2"}


class TestComputePassHash:
    def test_is_hex_sha1_of_serialized_manifest(self) -> None:
        expected_manifest = {
            "pass.json": file_digest(PASS_JSON),
            "en.lproj/pass.strings": file_digest(LOCALIZATIONS[0][1]),
            "icon.png": file_digest(b"icon-bytes"),
            "logo.png": file_digest(b"logo-bytes"),
        }
        expected = hashlib.sha1(
            json.dumps(expected_manifest, separators=(",", ":")).encode("utf-8")
        ).hexdigest()

        assert compute_pass_hash(PASS_JSON, LOCALIZATIONS, ASSETS) == expected

    def test_identical_inputs_hash_identically(self) -> None:
        first = compute_pass_hash(PASS_JSON, LOCALIZATIONS, ASSETS)
        second = compute_pass_hash(bytes(PASS_JSON), list(LOCALIZATIONS), list(ASSETS))

        assert first == second
        assert len(first) == 40

    def test_changing_one_asset_byte_changes_hash(self) -> None:
        changed_assets = [("icon.png", b"icon-bytez"), ("logo.png", b"logo-bytes")]

        assert compute_pass_hash(PASS_JSON, LOCALIZATIONS, ASSETS) != compute_pass_hash(
            PASS_JSON, LOCALIZATIONS, changed_assets
        )

    def test_changing_descriptor_changes_hash(self) -> None:
        other = b'{"formatVersion":1,"serialNumber":"002"}'

        assert compute_pass_hash(PASS_JSON, [], []) != compute_pass_hash(other, [], [])

    def test_asset_order_is_significant(self) -> None:
        assert compute_pass_hash(PASS_JSON, [], ASSETS) != compute_pass_hash(PASS_JSON, [], list(reversed(ASSETS)))
