#!/usr/bin/env python3
"""
Apple Wallet Pass Build Gate

Validates a generated .pkpass artifact before it is shipped:
- required files present, flat archive layout
- manifest.json digests match every file
- detached signature verifies over manifest.json
- image variants have the expected dimensions

Exits non-zero on any failure.
"""
import sys
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image

from tapink.services.pass_assets import ICON_SIZES, LOGO_SIZES, STRIP_SIZES, THUMBNAIL_SIZES, variant_names
from tapink.services.pass_bundle import BundleReport, inspect_bundle
from tapink.services.pass_signing import embedded_certificates


def expected_dimensions() -> Dict[str, Tuple[int, int]]:
    dims = {}
    for names, sizes in (
        (variant_names("icon"), ICON_SIZES),
        (variant_names("logo"), LOGO_SIZES),
        (variant_names("thumbnail"), THUMBNAIL_SIZES),
    ):
        for name, size in zip(names, sizes):
            dims[f"{name}.png"] = (size, size)
    for name, size in zip(variant_names("strip"), STRIP_SIZES):
        dims[f"{name}.png"] = size
    return dims


def validate_image_dimensions(bundle_bytes: bytes) -> List[str]:
    """Return one error per image whose size is off. Absent optional images are fine."""
    errors = []
    with zipfile.ZipFile(BytesIO(bundle_bytes), "r") as zf:
        names = set(zf.namelist())
        for filename, (expected_w, expected_h) in expected_dimensions().items():
            if filename not in names:
                continue
            try:
                width, height = Image.open(BytesIO(zf.read(filename))).size
            except OSError as e:
                errors.append(f"{filename}: not a readable image ({e})")
                continue
            if (width, height) != (expected_w, expected_h):
                errors.append(f"{filename}: expected {expected_w}x{expected_h}, got {width}x{height}")
    return errors


def print_report(report: BundleReport, errors: List[str], cert_subjects: List[str]) -> None:
    print(f"Files ({len(report.files)}):")
    for name in sorted(report.files):
        print(f"   {name}")
    if report.error:
        print(f"   ✗ {report.error}")
    if report.missing_files:
        print(f"   ✗ Missing files: {', '.join(report.missing_files)}")
    if report.nested_files:
        print(f"   ✗ Nested files not allowed: {', '.join(report.nested_files)}")
    if report.manifest_mismatches:
        print(f"   ✗ Manifest mismatch: {', '.join(report.manifest_mismatches)}")
    else:
        print("   ✓ Manifest matches archive contents")
    print(f"   {'✓' if report.signature_valid else '✗'} Detached signature over manifest.json")
    for subject in cert_subjects:
        print(f"      cert: {subject}")
    for err in errors:
        print(f"   ✗ {err}")


def run_gate(bundle_bytes: bytes, signer_cert: Optional[bytes] = None) -> bool:
    report = inspect_bundle(bundle_bytes, signer_cert)
    errors = [] if report.error else validate_image_dimensions(bundle_bytes)

    cert_subjects = []
    if report.signature_valid:
        with zipfile.ZipFile(BytesIO(bundle_bytes), "r") as zf:
            signature = zf.read("signature")
        cert_subjects = [cert.subject.rfc4514_string() for cert in embedded_certificates(signature)]
        if len(cert_subjects) < 2:
            errors.append("signature does not carry the WWDR intermediate certificate")

    print_report(report, errors, cert_subjects)
    return report.ok and not errors


def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Validate a .pkpass bundle")
    parser.add_argument("pkpass", help="Path to the .pkpass file")
    parser.add_argument("--signer-cert", help="PEM signer certificate to pin signature verification to")
    args = parser.parse_args(argv)

    print("Apple Wallet Pass Build Gate")
    print("=" * 50)

    bundle_bytes = Path(args.pkpass).read_bytes()
    signer_cert = Path(args.signer_cert).read_bytes() if args.signer_cert else None

    ok = run_gate(bundle_bytes, signer_cert)
    print("PASS" if ok else "FAIL")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
