"""
.pkpass archive assembly and inspection.

A pass bundle is a flat zip: every file lives at the archive root, next to
manifest.json and the detached signature.
"""
import json
import logging
import zipfile
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, List, Optional

from tapink.services.pass_errors import PackagingError
from tapink.services.pass_manifest import PASS_JSON_NAME, compute_manifest
from tapink.services.pass_signing import SIGNATURE_NAME, verify_detached

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
REQUIRED_FILES = (PASS_JSON_NAME, MANIFEST_NAME, SIGNATURE_NAME, "icon.png")
ZIP_MAGIC = b"PK\x03\x04"


def package(directory: Dict[str, bytes], manifest_bytes: bytes, signature_bytes: bytes) -> bytes:
    """
    Zip the pass directory, manifest and signature into a flat archive.

    Raises:
        PackagingError: on nested or reserved file names, or any I/O failure
    """
    for filename in directory:
        if "/" in filename or "\\" in filename:
            raise PackagingError(f"Pass files must live at the archive root: {filename}")
        if filename in (MANIFEST_NAME, SIGNATURE_NAME):
            raise PackagingError(f"{filename} is reserved in pass bundles")

    bundle = BytesIO()
    try:
        with zipfile.ZipFile(bundle, "w", zipfile.ZIP_DEFLATED) as zf:
            for filename, content in directory.items():
                zf.writestr(filename, content)
            zf.writestr(MANIFEST_NAME, manifest_bytes)
            zf.writestr(SIGNATURE_NAME, signature_bytes)
    except (OSError, ValueError, zipfile.LargeZipFile) as e:
        logger.error(f"Failed to write pass archive: {e}", exc_info=True)
        raise PackagingError("Failed to write pass archive") from e

    return bundle.getvalue()


@dataclass
class BundleReport:
    """Result of validating a .pkpass archive"""
    files: List[str] = field(default_factory=list)
    missing_files: List[str] = field(default_factory=list)
    nested_files: List[str] = field(default_factory=list)
    # Files whose digest disagrees with manifest.json, or that only one side lists
    manifest_mismatches: List[str] = field(default_factory=list)
    signature_valid: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and not self.missing_files
            and not self.nested_files
            and not self.manifest_mismatches
            and self.signature_valid
        )


def inspect_bundle(bundle: bytes, signer_cert: Optional[bytes] = None) -> BundleReport:
    """
    Unzip a bundle and check it the way a wallet would.

    Verifies required files, flat layout, manifest digests for every file
    and the detached signature over manifest.json.
    """
    report = BundleReport()
    if not bundle.startswith(ZIP_MAGIC):
        report.error = "Not a zip archive"
        return report

    try:
        with zipfile.ZipFile(BytesIO(bundle), "r") as zf:
            report.files = zf.namelist()
            contents = {name: zf.read(name) for name in report.files}
    except (zipfile.BadZipFile, OSError) as e:
        report.error = f"Failed to read zip: {e}"
        return report

    report.missing_files = [name for name in REQUIRED_FILES if name not in contents]
    report.nested_files = [name for name in report.files if "/" in name]

    manifest_bytes = contents.get(MANIFEST_NAME)
    if manifest_bytes is None:
        return report

    try:
        manifest = json.loads(manifest_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        report.error = f"manifest.json is not valid JSON: {e}"
        return report

    payload = {
        name: content for name, content in contents.items() if name not in (MANIFEST_NAME, SIGNATURE_NAME)
    }
    actual = compute_manifest(payload)
    report.manifest_mismatches = sorted(
        name for name in set(actual) | set(manifest) if actual.get(name) != manifest.get(name)
    )

    signature = contents.get(SIGNATURE_NAME)
    if signature is not None:
        report.signature_valid = verify_detached(signature, manifest_bytes, signer_cert)

    return report
