# rsk_attest/schemas.py
import re
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

ZERO_UID = "0x" + "00" * 32
DEFAULT_ATTESTATION_LIMIT = 100
DEFAULT_SCHEMA_LIMIT = 50


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ---------- INDEXER / REGISTRY RECORDS ----------
class SchemaRef(_Frozen):
    id: str
    schema_: str = Field(default="", alias="schema")


class AttestationRecord(_Frozen):
    id: str = ""
    uid: str
    schema_: SchemaRef = Field(alias="schema")
    recipient: str
    attester: str
    time: int = 0
    time_created: int = Field(default=0, alias="timeCreated")
    revocation_time: int = Field(default=0, alias="revocationTime")
    expiration_time: int = Field(default=0, alias="expirationTime")
    revocable: bool = True
    data: str = "0x"
    decoded_data_json: Optional[str] = Field(default=None, alias="decodedDataJson")

    @field_validator("time", "time_created", "revocation_time", "expiration_time", mode="before")
    @classmethod
    def _int_timestamp(cls, v):
        # the indexer serializes 64-bit timestamps as strings
        return int(v) if v not in (None, "") else 0


class OnChainAttestation(_Frozen):
    uid: str
    schema_: str = Field(alias="schema")
    time: int
    expiration_time: int
    revocation_time: int
    ref_uid: str
    recipient: str
    attester: str
    revocable: bool
    data: str


class SchemaRecord(_Frozen):
    uid: str = Field(alias="id")
    schema_: str = Field(default="", alias="schema")
    resolver: str
    revocable: bool
    creator: Optional[str] = None
    time: Optional[int] = None


class AttestationReceipt(BaseModel):
    uid: str
    tx_hash: str
    block_number: Optional[int] = None
    timestamp: int


# ---------- QUERY PREDICATE ----------
class QueryKind(str, Enum):
    ATTESTATIONS = "attestations"
    SCHEMAS = "schemas"


class QueryPredicate(_Frozen):
    kind: QueryKind = QueryKind.ATTESTATIONS
    schema_id: Optional[str] = None
    recipient: Optional[str] = None
    attester: Optional[str] = None
    creator: Optional[str] = None
    uids: Optional[List[str]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    @property
    def effective_limit(self) -> int:
        if self.limit is not None:
            return self.limit
        if self.kind == QueryKind.SCHEMAS:
            return DEFAULT_SCHEMA_LIMIT
        return DEFAULT_ATTESTATION_LIMIT


# ---------- VERIFICATION ----------
class IssueSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    FATAL = "fatal"


class Issue(_Frozen):
    severity: IssueSeverity
    message: str

    @classmethod
    def info(cls, message: str) -> "Issue":
        return cls(severity=IssueSeverity.INFO, message=message)

    @classmethod
    def warning(cls, message: str) -> "Issue":
        return cls(severity=IssueSeverity.WARNING, message=message)

    @classmethod
    def fatal(cls, message: str) -> "Issue":
        return cls(severity=IssueSeverity.FATAL, message=message)


class VerificationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    exists: bool = False
    is_revoked: bool = Field(default=False, serialization_alias="isRevoked")
    is_expired: bool = Field(default=False, serialization_alias="isExpired")
    attestation: Optional[AttestationRecord] = None
    issues: List[Issue] = Field(default_factory=list)

    @computed_field(alias="isValid")
    @property
    def is_valid(self) -> bool:
        return self.exists and not any(i.severity == IssueSeverity.FATAL for i in self.issues)

    def messages(self) -> List[str]:
        return [i.message for i in self.issues]


# ---------- API BODIES ----------
class IssueAttestationIn(BaseModel):
    schema_uid: str
    recipient: str
    data: dict | str = "0x"
    expiration_time: int = 0
    revocable: bool = True
    value: str = "0"


class RegisterSchemaIn(BaseModel):
    schema_definition: str
    resolver: Optional[str] = None
    revocable: bool = True


class RevokeIn(BaseModel):
    schema_uid: str


class EncodeIn(BaseModel):
    schema_definition: Optional[str] = None
    values: dict


# ---------- FORMAT CHECKS ----------
ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
UID_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")


def is_valid_address(value: Optional[str]) -> bool:
    return bool(value and ADDRESS_PATTERN.match(value))


def is_valid_uid(value: Optional[str]) -> bool:
    return bool(value and UID_PATTERN.match(value))
