"""Pass templates and candidate passes.

A template is a ZIP archive holding a pass.json, PNG images and optional
``<lang>.lproj/pass.strings`` localization files. Previously issued .pkpass
bundles have the same layout (plus manifest.json and signature, which are
ignored), so the same reader is used to re-open a stored pass for updates.
"""

import copy
import io
import json
import re
import typing as t
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath

import structlog

from wallet.apple.manifest import EXCLUDED_FILES, compute_pass_hash
from wallet.exceptions import PassTemplateError

logger = structlog.get_logger(__name__)

PASS_JSON = "pass.json"
STRINGS_FILENAME = "pass.strings"
LPROJ_SUFFIX = ".lproj"

# Entries written by archivers that are never part of a pass
_IGNORED_PREFIXES = ("__MACOSX/",)
_IGNORED_NAMES = frozenset({".DS_Store", "Thumbs.db"})

_STRINGS_TOKEN = re.compile(
    r'/\*.*?\*/|//[^\n]*|"((?:[^"\\]|\\.)*)"\s*=\s*"((?:[^"\\]|\\.)*)"\s*;',
    re.DOTALL,
)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}


def parse_strings(data: bytes) -> dict[str, str]:
    """Parse an Apple ``.strings`` file into an ordered mapping.

    Accepts UTF-8 (with or without BOM) and UTF-16 with BOM. Comments are
    skipped.

    Raises:
        PassTemplateError: If the file cannot be decoded.
    """
    try:
        if data.startswith((b"\xff\xfe", b"\xfe\xff")):
            text = data.decode("utf-16")
        else:
            text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise PassTemplateError(f"Localization file is not valid UTF-8/UTF-16: {e}")

    def unescape(value: str) -> str:
        return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), value)

    strings: dict[str, str] = {}
    for match in _STRINGS_TOKEN.finditer(text):
        key, value = match.group(1), match.group(2)
        if key is None:
            continue
        strings[unescape(key)] = unescape(value)
    return strings


def serialize_strings(strings: dict[str, str]) -> bytes:
    """Serialize a mapping back into canonical UTF-8 ``.strings`` content."""

    def escape(value: str) -> str:
        return (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
            .replace("\t", "\\t")
        )

    lines = [f'"{escape(key)}" = "{escape(value)}";\n' for key, value in strings.items()]
    return "".join(lines).encode("utf-8")


def _strip_wrapping_folder(names: list[str]) -> str:
    """Return the single folder prefix all entries share, if pass.json is not at the root."""
    if PASS_JSON in names:
        return ""
    roots = {name.split("/", 1)[0] for name in names if "/" in name}
    if len(roots) == 1 and all("/" in name for name in names):
        prefix = roots.pop() + "/"
        if f"{prefix}{PASS_JSON}" in names:
            return prefix
    return ""


@dataclass
class WalletPass:
    """A candidate pass: a mutable pass.json plus its localizations and images."""

    pass_json: dict[str, t.Any]
    localizations: dict[str, dict[str, str]] = field(default_factory=dict)
    images: dict[str, bytes] = field(default_factory=dict)

    @property
    def pass_type_identifier(self) -> str:
        return str(self.pass_json.get("passTypeIdentifier") or "")

    @property
    def serial_number(self) -> str:
        return str(self.pass_json.get("serialNumber") or "")

    @property
    def authentication_token(self) -> str | None:
        return self.pass_json.get("authenticationToken")

    @authentication_token.setter
    def authentication_token(self, value: str) -> None:
        self.pass_json["authenticationToken"] = value

    @property
    def web_service_url(self) -> str | None:
        return self.pass_json.get("webServiceURL")

    @web_service_url.setter
    def web_service_url(self, value: str) -> None:
        self.pass_json["webServiceURL"] = value

    @property
    def expiration_date(self) -> str | None:
        return self.pass_json.get("expirationDate")

    @property
    def barcodes(self) -> list[dict[str, t.Any]]:
        barcodes = self.pass_json.get("barcodes")
        return barcodes if isinstance(barcodes, list) else []

    def apply_update(self, barcode_message: str = "", barcode_alt_text: str = "", expiration_date: str = "") -> None:
        """Overwrite the mutable fields of the pass.

        Every field is replaced: a value left at its default clears the field
        rather than keeping the previous one. The barcode fields only apply
        when the pass has at least one barcode; an empty expiration date
        removes the key.
        """
        barcodes = self.barcodes
        if barcodes and isinstance(barcodes[0], dict):
            barcodes[0]["message"] = barcode_message
            barcodes[0]["altText"] = barcode_alt_text

        if expiration_date:
            self.pass_json["expirationDate"] = expiration_date
        else:
            self.pass_json.pop("expirationDate", None)

    def pass_json_bytes(self) -> bytes:
        """Serialize pass.json compactly, preserving key order."""
        return json.dumps(self.pass_json, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    def localization_files(self) -> list[tuple[str, bytes]]:
        """Return ``<lang>.lproj/pass.strings`` files in language order."""
        return [
            (f"{language}{LPROJ_SUFFIX}/{STRINGS_FILENAME}", serialize_strings(strings))
            for language, strings in self.localizations.items()
        ]

    def asset_files(self) -> list[tuple[str, bytes]]:
        """Return image files in the order they were read."""
        return list(self.images.items())

    def files(self) -> list[tuple[str, bytes]]:
        """Return every bundle file: pass.json, localizations, then assets."""
        return [(PASS_JSON, self.pass_json_bytes()), *self.localization_files(), *self.asset_files()]

    def content_hash(self) -> str:
        """Return the content fingerprint of this pass."""
        return compute_pass_hash(self.pass_json_bytes(), self.localization_files(), self.asset_files())


@dataclass
class PassTemplate:
    """A parsed pass template from which candidate passes are created."""

    pass_json: dict[str, t.Any]
    localizations: dict[str, dict[str, str]] = field(default_factory=dict)
    images: dict[str, bytes] = field(default_factory=dict)

    @property
    def pass_type_identifier(self) -> str:
        return str(self.pass_json.get("passTypeIdentifier") or "")

    @property
    def serial_number(self) -> str:
        return str(self.pass_json.get("serialNumber") or "")

    @classmethod
    def from_bytes(cls, data: bytes) -> "PassTemplate":
        """Read a template (or an issued .pkpass) from ZIP bytes.

        Args:
            data: The archive content.

        Returns:
            The parsed template.

        Raises:
            PassTemplateError: If the archive or its pass.json cannot be read.
        """
        if not data:
            raise PassTemplateError("Template is empty")

        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise PassTemplateError(f"Template is not a ZIP archive: {e}")

        with archive:
            names = [
                info.filename
                for info in archive.infolist()
                if not info.is_dir()
                and not info.filename.startswith(_IGNORED_PREFIXES)
                and PurePosixPath(info.filename).name not in _IGNORED_NAMES
            ]
            prefix = _strip_wrapping_folder(names)

            pass_json: dict[str, t.Any] | None = None
            localizations: dict[str, dict[str, str]] = {}
            images: dict[str, bytes] = {}

            for name in names:
                path = name[len(prefix) :] if prefix and name.startswith(prefix) else name
                if not path or path in EXCLUDED_FILES:
                    continue
                try:
                    content = archive.read(name)
                except (zipfile.BadZipFile, OSError) as e:
                    raise PassTemplateError(f"Cannot read {path} from template: {e}")

                parts = PurePosixPath(path).parts
                if path == PASS_JSON:
                    pass_json = cls._load_pass_json(content)
                elif len(parts) == 2 and parts[0].endswith(LPROJ_SUFFIX) and parts[1] == STRINGS_FILENAME:
                    language = parts[0][: -len(LPROJ_SUFFIX)]
                    localizations[language] = parse_strings(content)
                elif path.lower().endswith(".png") and (
                    len(parts) == 1 or (len(parts) == 2 and parts[0].endswith(LPROJ_SUFFIX))
                ):
                    images[path] = content
                else:
                    logger.debug("template_entry_ignored", path=path)

        if pass_json is None:
            raise PassTemplateError("Template does not contain pass.json")

        return cls(pass_json=pass_json, localizations=localizations, images=images)

    @staticmethod
    def _load_pass_json(content: bytes) -> dict[str, t.Any]:
        try:
            loaded = json.loads(content.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PassTemplateError(f"pass.json is not valid JSON: {e}")
        if not isinstance(loaded, dict):
            raise PassTemplateError("pass.json must contain a JSON object")
        return loaded

    def create_pass(self) -> WalletPass:
        """Create an independent candidate pass from this template."""
        return WalletPass(
            pass_json=copy.deepcopy(self.pass_json),
            localizations=copy.deepcopy(self.localizations),
            images=dict(self.images),
        )
