# rsk_attest/main.py
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from rsk_attest import codec
from rsk_attest.blockchain import ZERO_ADDRESS, RegistryClient, prepare_attestation_data
from rsk_attest.errors import (
    AttestError,
    ConfigurationError,
    EncodingError,
    InvalidQueryError,
)
from rsk_attest.logger import configure_logging
from rsk_attest.query import IndexerClient
from rsk_attest.schemas import (
    EncodeIn,
    IssueAttestationIn,
    RegisterSchemaIn,
    RevokeIn,
    is_valid_address,
    is_valid_uid,
)
from rsk_attest.settings import settings
from rsk_attest.verification import VerificationEngine

log = logging.getLogger(__name__)

app = FastAPI(title="Rootstock Attestation Backend")

CLIENT_ERRORS = (InvalidQueryError, EncodingError, ConfigurationError)


@app.on_event("startup")
def startup():
    configure_logging(settings.LOG_LEVEL)


@app.exception_handler(AttestError)
async def attest_error_handler(request: Request, exc: AttestError):
    status = 400 if isinstance(exc, CLIENT_ERRORS) else 502
    log.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"success": False, "error": str(exc)})


# ---------- DEPENDENCIES ----------
def get_indexer() -> IndexerClient:
    return IndexerClient(settings.network().graphql_endpoint, timeout_s=settings.INDEXER_TIMEOUT)


def get_registry() -> RegistryClient:
    return RegistryClient(
        settings.network(),
        private_key=settings.PRIVATE_KEY,
        mnemonic=settings.MNEMONIC,
    )


def get_engine(
    indexer: IndexerClient = Depends(get_indexer),
    registry: RegistryClient = Depends(get_registry),
) -> VerificationEngine:
    return VerificationEngine(indexer, registry)


def _require_uid(uid: str, what: str = "UID") -> None:
    if not is_valid_uid(uid):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid {what} format. Expected 0x followed by 64 hex characters",
        )


def _require_address(address: Optional[str], what: str) -> None:
    if address and not is_valid_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid {what} address format")


# ---------- VERIFY ----------
@app.get("/verify/{uid}")
def verify_attestation(
    uid: str,
    check_expiration: bool = True,
    check_revocation: bool = True,
    engine: VerificationEngine = Depends(get_engine),
):
    """
    Run every verification check for one attestation and return the verdict.
    """
    _require_uid(uid)
    result = engine.verify(uid, check_expiration=check_expiration, check_revocation=check_revocation)
    return {"success": True, "verification": result.model_dump(mode="json", by_alias=True)}


# ---------- QUERY ----------
@app.get("/attestations")
def list_attestations(
    schema: Optional[str] = None,
    recipient: Optional[str] = None,
    attester: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    indexer: IndexerClient = Depends(get_indexer),
):
    _require_address(recipient, "recipient")
    _require_address(attester, "attester")
    records = indexer.query_attestations(
        schema_id=schema, recipient=recipient, attester=attester, limit=limit, offset=offset
    )
    return {
        "success": True,
        "count": len(records),
        "attestations": [r.model_dump(mode="json", by_alias=True) for r in records],
    }


@app.get("/attestations/{uid}")
def get_attestation(uid: str, indexer: IndexerClient = Depends(get_indexer)):
    _require_uid(uid)
    records = indexer.get_attestations_by_uid([uid])
    if not records:
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "Attestation not found", "uid": uid},
        )
    return {"success": True, "attestation": records[0].model_dump(mode="json", by_alias=True)}


@app.get("/schemas")
def list_schemas(
    creator: Optional[str] = None,
    limit: int = 50,
    indexer: IndexerClient = Depends(get_indexer),
):
    _require_address(creator, "creator")
    schemas = indexer.query_schemas(creator=creator, limit=limit)
    return {
        "success": True,
        "count": len(schemas),
        "schemas": [s.model_dump(mode="json", by_alias=True) for s in schemas],
    }


# ---------- WRITES ----------
@app.post("/attestations")
def issue_attestation(data: IssueAttestationIn, registry: RegistryClient = Depends(get_registry)):
    """
    Issue an attestation. JSON data is encoded against the schema's on-chain
    definition; a 0x string is sent as already-encoded bytes.
    """
    settings.validate_for_signing()
    _require_uid(data.schema_uid, "schema UID")
    _require_address(data.recipient, "recipient")

    payload = prepare_attestation_data(registry, data.schema_uid, data.data)
    receipt = registry.attest(
        schema=data.schema_uid,
        recipient=data.recipient,
        data=payload,
        expiration_time=data.expiration_time,
        revocable=data.revocable,
        value=data.value,
    )
    return {
        "success": True,
        "attestation": {
            **receipt.model_dump(mode="json"),
            "schema": data.schema_uid,
            "recipient": data.recipient,
            "revocable": data.revocable,
        },
    }


@app.post("/attestations/{uid}/revoke")
def revoke_attestation(uid: str, data: RevokeIn, registry: RegistryClient = Depends(get_registry)):
    settings.validate_for_signing()
    _require_uid(uid)
    _require_uid(data.schema_uid, "schema UID")
    tx = registry.revoke(data.schema_uid, uid)
    return {"success": True, "uid": uid, "tx": tx}


@app.post("/schemas")
def register_schema(data: RegisterSchemaIn, registry: RegistryClient = Depends(get_registry)):
    settings.validate_for_signing()
    _require_address(data.resolver, "resolver")
    uid = registry.register_schema(
        data.schema_definition, data.resolver or ZERO_ADDRESS, data.revocable
    )
    return {"success": True, "uid": uid, "schema": data.schema_definition}


@app.post("/encode")
def encode_data(data: EncodeIn):
    if data.schema_definition:
        definition = data.schema_definition
    else:
        definition = codec.infer_definition(data.values)
    return {
        "success": True,
        "schema": definition,
        "encoded": codec.encode(definition, data.values),
    }


@app.get("/config")
def show_config():
    return settings.safe_view()
