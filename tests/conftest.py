"""
Pytest configuration and fixtures for KYC batch verifier tests.
"""

import json
import pytest
from pathlib import Path
import tempfile
import shutil

import httpx
import pandas as pd

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import ProviderConfig, CipherConfig, PolicyConfig, KycSettings
from models import IdentifierType, NormalizedRecord
from security import FieldCipher


PROVIDER_URL = "https://provider.test"
TEST_PASSPHRASE = "test-passphrase"


class FakeProvider:
    """
    httpx MockTransport handler standing in for the verification provider.

    ``scripts`` maps an identifier to a list of steps consumed one per call;
    a step is ``(status, body)`` or the string ``"timeout"``. Identifiers
    without a script get a valid, fully matching response.
    """

    def __init__(self):
        self.auth_calls = 0
        self.auth_status = 200
        self.auth_body = None
        self.verify_calls = []
        self.scripts = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/authenticate":
            self.auth_calls += 1
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, json={"message": "Invalid credentials"})
            body = self.auth_body or {"access_token": f"token-{self.auth_calls}"}
            return httpx.Response(200, json=body)

        body = json.loads(request.content)
        self.verify_calls.append({"path": request.url.path, "body": body, "headers": request.headers})

        identifier = body.get("pan") or body.get("aadhaar_number")
        script = self.scripts.get(identifier)
        if script:
            step = script.pop(0)
            if step == "timeout":
                raise httpx.ReadTimeout("timed out", request=request)
            status, payload = step
            return httpx.Response(status, json=payload)

        return httpx.Response(200, json=valid_response(len(self.verify_calls)))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def valid_response(n: int = 1, **overrides) -> dict:
    data = {
        "status": "valid",
        "name_as_per_pan_match": True,
        "name_as_per_aadhaar_match": True,
        "date_of_birth_match": True,
        "category": "Individual",
        "aadhaar_seeding_status": "y",
        "remarks": None,
    }
    data.update(overrides)
    return {"code": 200, "transaction_id": f"txn-{n}", "data": data}


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    temp = tempfile.mkdtemp()
    yield Path(temp)
    shutil.rmtree(temp, ignore_errors=True)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(api_key="test-key", api_secret="test-secret", base_url=PROVIDER_URL)


@pytest.fixture
def policy_config() -> PolicyConfig:
    """Strict mode, two retries, no backoff delay."""
    return PolicyConfig(mode="strict", max_retries=2, backoff_seconds=0, backoff_max_seconds=0, concurrency=2)


@pytest.fixture
def settings(provider_config, policy_config) -> KycSettings:
    return KycSettings(
        provider=provider_config,
        cipher=CipherConfig(passphrase=TEST_PASSPHRASE),
        policy=policy_config,
    )


@pytest.fixture(scope="session")
def cipher() -> FieldCipher:
    return FieldCipher(TEST_PASSPHRASE)


@pytest.fixture
def pan_record() -> NormalizedRecord:
    return NormalizedRecord(
        row_number=1,
        identifier_type=IdentifierType.PAN,
        identifier_primary="ABCDE1234F",
        name="Ravi Kumar",
        date_of_birth="1990-03-01",
    )


@pytest.fixture
def aadhaar_record() -> NormalizedRecord:
    return NormalizedRecord(
        row_number=1,
        identifier_type=IdentifierType.AADHAAR,
        identifier_primary="123456789012",
        name="Sita Devi",
        gender="F",
    )


@pytest.fixture
def make_xlsx(temp_dir):
    """Write rows to an .xlsx file and return its path."""
    def _make(rows, name="records.xlsx", columns=None):
        path = temp_dir / name
        pd.DataFrame(rows, columns=columns).to_excel(path, index=False, engine="openpyxl")
        return path
    return _make


@pytest.fixture
def pan_rows() -> list:
    """Three rows; the second has no PAN."""
    return [
        {"PAN": "ABCDE1234F", "Name": "Ravi Kumar", "DOB": "1990-03-01"},
        {"PAN": None, "Name": "No Pan", "DOB": "1985-07-12"},
        {"PAN": "PQRSX6789K", "Name": "Meena Shah", "DOB": "12/11/1979"},
    ]
