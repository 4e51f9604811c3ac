"""
Pytest configuration and fixtures for TapInk wallet pass tests.

Provides signing credentials on disk, operator configuration via environment
variables and an API client whose outbound HTTP is served by
httpx.MockTransport.
"""
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tests.helpers.pass_fixtures import P12_PASSWORD, KEY_PASSPHRASE, PassSigningPKI, RemoteAssets  # noqa: E402

PASSKIT_ENV_VARS = (
    "PASSKIT_CERT_P12_PATH",
    "PASSKIT_CERT_PASSWORD",
    "PASSKIT_SIGNER_CERT_PATH",
    "PASSKIT_SIGNER_KEY_PATH",
    "PASSKIT_SIGNER_KEY_PASSPHRASE",
    "PASSKIT_WWDR_CERT_PATH",
    "PASSKIT_TEAM_IDENTIFIER",
    "PASSKIT_PASS_TYPE_IDENTIFIER",
    "PASSKIT_ORGANIZATION_NAME",
    "PASSKIT_DESCRIPTION",
    "PASSKIT_ASSET_TIMEOUT_SECONDS",
    "PASSKIT_DEFAULT_ICON_PATH",
)


@pytest.fixture(scope="session")
def pki() -> PassSigningPKI:
    """RSA keys are slow to generate, so one PKI is shared by the whole session"""
    return PassSigningPKI.generate()


@pytest.fixture
def credential_files(tmp_path, pki):
    """Write every credential flavour to disk and return their paths"""
    files = {
        "p12": (tmp_path / "signer.p12", pki.pkcs12()),
        "cert_pem": (tmp_path / "signer.pem", pki.signer_cert_pem),
        "cert_der": (tmp_path / "signer.cer", pki.signer_cert_der),
        "key_pem": (tmp_path / "signer.key", pki.signer_key_pem()),
        "key_pem_encrypted": (tmp_path / "signer-encrypted.key", pki.signer_key_pem(KEY_PASSPHRASE)),
        "key_der": (tmp_path / "signer.der", pki.signer_key_der()),
        "wwdr_pem": (tmp_path / "wwdr.pem", pki.wwdr_pem),
        "wwdr_der": (tmp_path / "wwdr.cer", pki.wwdr_der),
    }
    paths = {}
    for key, (path, content) in files.items():
        path.write_bytes(content)
        paths[key] = str(path)
    return paths


@pytest.fixture
def clean_passkit_env(monkeypatch):
    for var in PASSKIT_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def passkit_env(clean_passkit_env, credential_files):
    """Fully configured PKCS#12 mode"""
    monkeypatch = clean_passkit_env
    monkeypatch.setenv("PASSKIT_CERT_P12_PATH", credential_files["p12"])
    monkeypatch.setenv("PASSKIT_CERT_PASSWORD", P12_PASSWORD)
    monkeypatch.setenv("PASSKIT_WWDR_CERT_PATH", credential_files["wwdr_pem"])
    monkeypatch.setenv("PASSKIT_TEAM_IDENTIFIER", "ABCDE12345")
    monkeypatch.setenv("PASSKIT_PASS_TYPE_IDENTIFIER", "pass.com.tapink.test")
    monkeypatch.setenv("PASSKIT_ORGANIZATION_NAME", "TapInk")
    return monkeypatch


@pytest.fixture
def remote_assets():
    return RemoteAssets()


@pytest.fixture
def client(remote_assets):
    """
    FastAPI TestClient with outbound HTTP served by remote_assets.

    Entering the context manager runs the lifespan, so the image backend is
    constructed exactly as in production.
    """
    from fastapi.testclient import TestClient
    from tapink.dependencies.pass_services import get_http_client
    from tapink.main import app

    mock_client = remote_assets.client()
    app.dependency_overrides[get_http_client] = lambda: mock_client
    try:
        with TestClient(app, raise_server_exceptions=False) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
