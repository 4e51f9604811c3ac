"""
API tests for POST /api/wallet-pass
"""
import json
import zipfile
from io import BytesIO

from tapink.services import apple_wallet_pass
from tapink.services.pass_bundle import ZIP_MAGIC, inspect_bundle
from tests.helpers.pass_fixtures import make_png, open_png, to_data_url

CARD = {
    "name": "Jane Doe",
    "company": "Acme",
    "title": "Engineer",
    "barcodeMessage": "https://example.com/u/42",
}


def _entries(body: bytes) -> dict:
    with zipfile.ZipFile(BytesIO(body)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert response.headers["X-Request-ID"]


def test_create_wallet_pass(passkit_env, client, pki):
    response = client.post("/api/wallet-pass", json=CARD)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/vnd.apple.pkpass"
    assert response.headers["content-disposition"] == 'attachment; filename="tapink-wallet.pkpass"'
    assert response.content.startswith(ZIP_MAGIC)

    entries = _entries(response.content)
    assert {"pass.json", "manifest.json", "signature", "icon.png", "icon@2x.png", "logo.png", "logo@2x.png"} <= set(entries)
    assert "strip.png" not in entries
    assert "thumbnail.png" not in entries

    pass_json = json.loads(entries["pass.json"])
    assert pass_json["serialNumber"] == response.headers["X-Pass-Serial-Number"]
    assert pass_json["logoText"] == "Acme"
    assert inspect_bundle(response.content, pki.signer_cert_pem).ok


def test_create_wallet_pass_pem_mode(passkit_env, credential_files, client, pki):
    passkit_env.delenv("PASSKIT_CERT_P12_PATH")
    passkit_env.delenv("PASSKIT_CERT_PASSWORD")
    passkit_env.setenv("PASSKIT_SIGNER_CERT_PATH", credential_files["cert_der"])
    passkit_env.setenv("PASSKIT_SIGNER_KEY_PATH", credential_files["key_pem"])
    passkit_env.setenv("PASSKIT_WWDR_CERT_PATH", credential_files["wwdr_der"])

    response = client.post("/api/wallet-pass", json={**CARD, "serialNumber": "card-7"})

    assert response.status_code == 200
    assert response.headers["X-Pass-Serial-Number"] == "card-7"
    assert inspect_bundle(response.content, pki.signer_cert_pem).ok


def test_branding_assets(passkit_env, client, remote_assets):
    remote_assets.add("https://cdn.example.com/strip.png", make_png(1500, 492, (0, 120, 0, 255)))
    payload = {
        **CARD,
        "logoUrl": "https://cdn.example.com/missing-logo.png",
        "stripImageUrl": "https://cdn.example.com/strip.png",
        "profilePicUrl": to_data_url(make_png(300, 300)),
        "colors": {"background": "#003366", "text": "#fff", "label": "bogus"},
    }

    response = client.post("/api/wallet-pass", json=payload)

    assert response.status_code == 200
    entries = _entries(response.content)
    # Unreachable logo falls back to the default icon
    assert open_png(entries["logo@2x.png"]).getpixel((0, 0)) == (0, 0, 0, 255)
    assert open_png(entries["strip@2x.png"]).size == (750, 246)
    assert open_png(entries["thumbnail@2x.png"]).getpixel((0, 0))[3] == 0

    pass_json = json.loads(entries["pass.json"])
    assert pass_json["backgroundColor"] == "rgb(0, 51, 102)"
    assert pass_json["foregroundColor"] == "rgb(255, 255, 255)"
    assert pass_json["labelColor"] == "rgb(255, 255, 255)"


def test_unusable_strip_is_omitted(passkit_env, client, remote_assets):
    remote_assets.add("https://cdn.example.com/strip.png", b"<html>not an image</html>")

    response = client.post("/api/wallet-pass", json={**CARD, "stripImageUrl": "https://cdn.example.com/strip.png"})

    assert response.status_code == 200
    entries = _entries(response.content)
    assert "strip.png" not in entries
    assert "strip@2x.png" not in entries


def test_malformed_asset_urls_degrade(passkit_env, client, remote_assets):
    payload = {**CARD, "logoUrl": "http://[::1/logo.png", "stripImageUrl": "http://[::1/strip.png"}

    response = client.post("/api/wallet-pass", json=payload)

    assert response.status_code == 200
    entries = _entries(response.content)
    assert open_png(entries["icon@2x.png"]).getpixel((0, 0)) == (0, 0, 0, 255)
    assert open_png(entries["logo@2x.png"]).size == (80, 80)
    assert "strip.png" not in entries
    assert "strip@2x.png" not in entries
    assert remote_assets.requests == []


def test_not_configured_returns_501(clean_passkit_env, client, monkeypatch):
    def explode(config):
        raise AssertionError("signing material must not be resolved")

    monkeypatch.setattr(apple_wallet_pass, "resolve_signing_material", explode)

    response = client.post("/api/wallet-pass", json=CARD)

    assert response.status_code == 501
    detail = response.json()["detail"]
    assert detail["error"] == "PASSKIT_NOT_CONFIGURED"
    assert "PASSKIT_WWDR_CERT_PATH" in detail["missing"]
    assert detail["message"].startswith("Wallet signing certs are not configured")


def test_missing_wwdr_only(passkit_env, client):
    passkit_env.delenv("PASSKIT_WWDR_CERT_PATH")

    response = client.post("/api/wallet-pass", json=CARD)

    assert response.status_code == 501
    assert response.json()["detail"]["missing"] == ["PASSKIT_WWDR_CERT_PATH"]


def test_bad_pkcs12_password_returns_500(passkit_env, client):
    passkit_env.setenv("PASSKIT_CERT_PASSWORD", "wrong password")

    response = client.post("/api/wallet-pass", json=CARD)

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["error"] == "PASSKIT_CREDENTIALS_INVALID"
    assert "wrong password" not in response.text


def test_unreadable_wwdr_returns_500(passkit_env, client, tmp_path):
    passkit_env.setenv("PASSKIT_WWDR_CERT_PATH", str(tmp_path / "missing.pem"))

    response = client.post("/api/wallet-pass", json=CARD)

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "PASSKIT_CREDENTIALS_INVALID"


def test_mismatched_key_returns_500(passkit_env, credential_files, client, pki, tmp_path):
    other_key = tmp_path / "other.key"
    other_key.write_bytes(pki.other_key_pem())
    passkit_env.delenv("PASSKIT_CERT_P12_PATH")
    passkit_env.delenv("PASSKIT_CERT_PASSWORD")
    passkit_env.setenv("PASSKIT_SIGNER_CERT_PATH", credential_files["cert_pem"])
    passkit_env.setenv("PASSKIT_SIGNER_KEY_PATH", str(other_key))

    response = client.post("/api/wallet-pass", json=CARD)

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "WALLET_PASS_FAILED"


def test_invalid_payload_returns_400(passkit_env, client):
    response = client.post("/api/wallet-pass", json={"name": "Jane Doe", "company": ""})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "INVALID_PAYLOAD"
    assert detail["message"] == "Invalid payload"
    assert {"company", "title", "barcodeMessage"} <= set(detail["fields"])


def test_non_json_body_returns_400(passkit_env, client):
    response = client.post(
        "/api/wallet-pass",
        content=b"this is not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "INVALID_PAYLOAD"
