"""
Tests for the end-to-end pass generator service
"""
import json
import zipfile
from io import BytesIO

import pytest

from tapink.config import PasskitConfig
from tapink.schemas.wallet_pass import WalletPassRequest
from tapink.services import apple_wallet_pass
from tapink.services.apple_wallet_pass import create_pkpass_bundle, ensure_configured
from tapink.services.pass_assets import ImageBackend
from tapink.services.pass_bundle import inspect_bundle
from tapink.services.pass_errors import ConfigurationMissing, InvalidPkcs12, SigningError
from tests.helpers.pass_fixtures import KEY_PASSPHRASE, P12_PASSWORD, make_png, to_data_url

CARD = dict(name="Jane Doe", company="Acme", title="Engineer", barcodeMessage="https://example.com/u/42")


def _config(**overrides):
    values = dict(
        team_identifier="ABCDE12345",
        pass_type_identifier="pass.com.tapink.test",
        organization_name="TapInk",
    )
    values.update(overrides)
    return PasskitConfig(**values)


@pytest.fixture
def backend():
    return ImageBackend.create()


def test_ensure_configured_lists_missing():
    with pytest.raises(ConfigurationMissing) as exc_info:
        ensure_configured(PasskitConfig())

    assert exc_info.value.code == "PASSKIT_NOT_CONFIGURED"
    assert "PASSKIT_WWDR_CERT_PATH" in exc_info.value.missing
    assert str(exc_info.value).startswith("Wallet signing certs are not configured. Set ")


@pytest.mark.asyncio
async def test_create_bundle_pkcs12(credential_files, remote_assets, backend, pki):
    config = _config(
        cert_p12_path=credential_files["p12"],
        cert_password=P12_PASSWORD,
        wwdr_cert_path=credential_files["wwdr_pem"],
    )
    request = WalletPassRequest(**CARD, serialNumber="card-42")

    async with remote_assets.client() as client:
        bundle = await create_pkpass_bundle(request, config, client, backend)

    assert bundle.serial_number == "card-42"
    assert bundle.filename == "tapink-wallet.pkpass"
    report = inspect_bundle(bundle.content, pki.signer_cert_pem)
    assert report.ok, report


@pytest.mark.asyncio
async def test_create_bundle_pem_pair_with_der_inputs(credential_files, remote_assets, backend, pki):
    config = _config(
        signer_cert_path=credential_files["cert_der"],
        signer_key_path=credential_files["key_pem_encrypted"],
        signer_key_passphrase=KEY_PASSPHRASE,
        wwdr_cert_path=credential_files["wwdr_der"],
    )
    request = WalletPassRequest(**CARD, profilePicUrl=to_data_url(make_png(200, 200)))

    async with remote_assets.client() as client:
        bundle = await create_pkpass_bundle(request, config, client, backend)

    assert inspect_bundle(bundle.content, pki.signer_cert_pem).ok
    with zipfile.ZipFile(BytesIO(bundle.content)) as zf:
        assert "thumbnail@2x.png" in zf.namelist()
        pass_json = json.loads(zf.read("pass.json"))
    assert pass_json["serialNumber"] == bundle.serial_number


@pytest.mark.asyncio
async def test_missing_config_fails_before_touching_credentials(monkeypatch, remote_assets, backend):
    def explode(config):
        raise AssertionError("signing material must not be resolved")

    monkeypatch.setattr(apple_wallet_pass, "resolve_signing_material", explode)
    config = _config(cert_p12_path="/does/not/exist.p12", cert_password="pw")

    async with remote_assets.client() as client:
        with pytest.raises(ConfigurationMissing) as exc_info:
            await create_pkpass_bundle(WalletPassRequest(**CARD), config, client, backend)

    assert exc_info.value.missing == ["PASSKIT_WWDR_CERT_PATH"]
    assert remote_assets.requests == []


@pytest.mark.asyncio
async def test_bad_pkcs12_password(credential_files, remote_assets, backend):
    config = _config(
        cert_p12_path=credential_files["p12"],
        cert_password="wrong",
        wwdr_cert_path=credential_files["wwdr_pem"],
    )

    async with remote_assets.client() as client:
        with pytest.raises(InvalidPkcs12):
            await create_pkpass_bundle(WalletPassRequest(**CARD), config, client, backend)


@pytest.mark.asyncio
async def test_mismatched_pem_key(credential_files, remote_assets, backend, pki, tmp_path):
    other_key = tmp_path / "other.key"
    other_key.write_bytes(pki.other_key_pem())
    config = _config(
        signer_cert_path=credential_files["cert_pem"],
        signer_key_path=str(other_key),
        wwdr_cert_path=credential_files["wwdr_pem"],
    )

    async with remote_assets.client() as client:
        with pytest.raises(SigningError):
            await create_pkpass_bundle(WalletPassRequest(**CARD), config, client, backend)
