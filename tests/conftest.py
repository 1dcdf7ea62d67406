import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Ensure repo root is on sys.path so `import rsk_attest` works under all pytest import modes.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rsk_attest import codec  # noqa: E402
from rsk_attest.blockchain import schema_uid  # noqa: E402
from rsk_attest.errors import RegistryError  # noqa: E402
from rsk_attest.schemas import (  # noqa: E402
    AttestationReceipt,
    AttestationRecord,
    OnChainAttestation,
    SchemaRecord,
)

UID = "0x" + "ab" * 32
SCHEMA_UID = "0x" + "cd" * 32
RECIPIENT = "0x" + "11" * 20
ATTESTER = "0x" + "22" * 20


def make_record(**overrides) -> AttestationRecord:
    row = {
        "id": overrides.get("uid", UID),
        "uid": UID,
        "schema": {"id": SCHEMA_UID, "schema": "string name,uint256 age"},
        "recipient": RECIPIENT,
        "attester": ATTESTER,
        "time": 1690000000,
        "timeCreated": 1690000000,
        "revocationTime": 0,
        "expirationTime": 0,
        "revocable": True,
        "data": "0x",
        "decodedDataJson": None,
    }
    row.update(overrides)
    return AttestationRecord.model_validate(row)


def make_onchain(uid: str = UID) -> OnChainAttestation:
    return OnChainAttestation(
        uid=uid,
        schema=SCHEMA_UID,
        time=1690000000,
        expiration_time=0,
        revocation_time=0,
        ref_uid="0x" + "00" * 32,
        recipient=RECIPIENT,
        attester=ATTESTER,
        revocable=True,
        data="0x",
    )


class FakeIndexer:
    def __init__(self, records: Optional[List[AttestationRecord]] = None, exc: Optional[Exception] = None):
        self.records = records or []
        self.exc = exc
        self.uid_calls = []

    def get_attestations_by_uid(self, uids):
        self.uid_calls.append(list(uids))
        if self.exc:
            raise self.exc
        return [r for r in self.records if r.uid in uids]

    def query_attestations(self, **kwargs):
        self.last_query = kwargs
        return list(self.records)

    def query_schemas(self, **kwargs):
        self.last_query = kwargs
        return []


class FakeRegistry:
    def __init__(
        self,
        onchain: Optional[OnChainAttestation] = None,
        schema: Optional[SchemaRecord] = None,
        attestation_exc: Optional[Exception] = None,
        schema_exc: Optional[Exception] = None,
    ):
        self.onchain = onchain if onchain is not None else make_onchain()
        self.schema = schema if schema is not None else SchemaRecord(
            uid=SCHEMA_UID,
            schema="string name,uint256 age",
            resolver="0x" + "00" * 20,
            revocable=True,
        )
        self.attestation_exc = attestation_exc
        self.schema_exc = schema_exc
        self.calls = []

    def get_attestation(self, uid):
        self.calls.append(("get_attestation", uid))
        if self.attestation_exc:
            raise self.attestation_exc
        return self.onchain

    def get_schema(self, uid):
        self.calls.append(("get_schema", uid))
        if self.schema_exc:
            raise self.schema_exc
        return self.schema


@pytest.fixture
def record():
    return make_record()


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def unreachable_registry():
    return FakeRegistry(attestation_exc=RegistryError("connection refused"))


class WritingRegistry(FakeRegistry):
    """Registry fake that also accepts writes; only UIDs in `known` have a schema."""

    def __init__(self, known=None, signer: str = ATTESTER, **kwargs):
        super().__init__(**kwargs)
        self.known = dict(known or {})
        self.signer = signer

    def get_schema(self, uid):
        self.calls.append(("get_schema", uid))
        return SchemaRecord(uid=uid, schema=self.known.get(uid, ""), resolver="0x" + "00" * 20, revocable=True)

    def get_signer_address(self):
        return self.signer

    def get_balance(self):
        return "1.5"

    def encode_attestation_data(self, definition, data):
        return codec.encode(definition, data)

    def register_schema(self, definition, resolver="0x" + "00" * 20, revocable=True):
        uid = schema_uid(definition, resolver, revocable)
        self.calls.append(("register_schema", definition))
        self.known[uid] = definition
        return uid

    def attest(self, **kwargs):
        self.calls.append(("attest", kwargs))
        return AttestationReceipt(uid=UID, tx_hash="0x" + "99" * 32, block_number=7, timestamp=1)

    def revoke(self, schema, uid):
        self.calls.append(("revoke", schema, uid))
        return "0x" + "98" * 32
