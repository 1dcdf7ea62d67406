# rsk_attest/verification.py
"""
Attestation verification.

The indexer is fast but may lag; the registry is authoritative but slow and
sometimes unreachable. A verdict is built by running a fixed sequence of
checks over both views. Each check can only add issues, so a later check can
never restore validity an earlier one took away.

Tolerance policy for the two sources:
  * registry unreachable while corroborating the attestation -> warning only
  * registry reachable but disagreeing with the indexer       -> fatal
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from rsk_attest.blockchain import RegistryClient
from rsk_attest.errors import RegistryError, TransportError
from rsk_attest.query import IndexerClient
from rsk_attest.schemas import AttestationRecord, Issue, VerificationResult

log = logging.getLogger(__name__)

NOT_FOUND = "Attestation does not exist"
ALL_PASSED = "All checks passed"
MISMATCH = "Attestation data mismatch between on-chain and indexer"
ONCHAIN_UNAVAILABLE = "Warning: Could not verify on-chain data"
SCHEMA_INVALID = "Referenced schema does not exist or is invalid"
SCHEMA_FAILED = "Failed to validate schema"


def iso_instant(ts: int) -> str:
    """UTC ISO-8601 with milliseconds; values past datetime's range come back as the raw integer."""
    try:
        dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return str(ts)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def revocation_issue(record: AttestationRecord) -> Optional[Issue]:
    if record.revocation_time > 0:
        return Issue.fatal(f"Attestation was revoked on {iso_instant(record.revocation_time)}")
    return None


def expiration_issue(record: AttestationRecord, now: int) -> Optional[Issue]:
    if record.expiration_time > 0 and record.expiration_time < now:
        return Issue.fatal(f"Attestation expired on {iso_instant(record.expiration_time)}")
    return None


def cross_source_issue(uid: str, registry: RegistryClient) -> Optional[Issue]:
    try:
        onchain = registry.get_attestation(uid)
    except (RegistryError, TransportError) as e:
        log.warning("Could not verify on-chain data: %s", e)
        return Issue.warning(ONCHAIN_UNAVAILABLE)
    if onchain is None or onchain.uid.lower() != uid.lower():
        return Issue.fatal(MISMATCH)
    return None


def schema_issue(record: AttestationRecord, registry: RegistryClient) -> Optional[Issue]:
    try:
        schema = registry.get_schema(record.schema_.id)
    except (RegistryError, TransportError) as e:
        log.warning("Schema lookup failed for %s: %s", record.schema_.id, e)
        return Issue.fatal(SCHEMA_FAILED)
    if schema is None or not schema.schema_:
        return Issue.fatal(SCHEMA_INVALID)
    return None


class VerificationEngine:
    def __init__(
        self,
        indexer: IndexerClient,
        registry: RegistryClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.indexer = indexer
        self.registry = registry
        self.clock = clock

    def verify(
        self,
        uid: str,
        check_expiration: bool = True,
        check_revocation: bool = True,
    ) -> VerificationResult:
        log.info("Verifying attestation: %s", uid)
        result = VerificationResult(uid=uid)

        # indexer failures here mean the request itself is broken; let them out
        records = self.indexer.get_attestations_by_uid([uid])
        if not records:
            result.issues.append(Issue.fatal(NOT_FOUND))
            return result

        record = records[0]
        result.exists = True
        result.attestation = record

        issues: List[Issue] = []
        try:
            if check_revocation:
                issue = revocation_issue(record)
                if issue:
                    result.is_revoked = True
                    issues.append(issue)

            if check_expiration:
                issue = expiration_issue(record, int(self.clock()))
                if issue:
                    result.is_expired = True
                    issues.append(issue)

            # the two registry reads are independent of each other
            for issue in (cross_source_issue(uid, self.registry), schema_issue(record, self.registry)):
                if issue:
                    issues.append(issue)
        except Exception as e:
            log.exception("Verification of %s failed", uid)
            result.issues = [Issue.fatal(f"Verification failed: {e}")]
            return result

        result.issues = issues or [Issue.info(ALL_PASSED)]
        log.info("Verification of %s finished: valid=%s", uid, result.is_valid)
        return result
