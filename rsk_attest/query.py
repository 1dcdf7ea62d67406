# rsk_attest/query.py
import json
import logging
from typing import Iterable, List, Optional, Sequence, Union

import requests
from pydantic import ValidationError

from rsk_attest.errors import IndexerQueryError, InvalidQueryError, TransportError
from rsk_attest.schemas import AttestationRecord, QueryKind, QueryPredicate, SchemaRecord

log = logging.getLogger(__name__)

ATTESTATION_FIELDS = """
          id
          uid
          schema {
            id
            schema
          }
          recipient
          attester
          time
          timeCreated
          revocationTime
          expirationTime
          revocable
          data
          decodedDataJson"""

SCHEMA_FIELDS = """
          id
          schema
          creator
          resolver
          revocable
          time"""


def _literal(value: str) -> str:
    # GraphQL string literals share JSON's escaping rules
    return json.dumps(str(value))


def _pagination(predicate: QueryPredicate) -> List[str]:
    limit = predicate.effective_limit
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidQueryError(f"limit must be a positive integer, got {limit!r}")
    clauses = [f"first: {limit}"]
    if predicate.offset:
        if predicate.offset < 0:
            raise InvalidQueryError(f"offset must not be negative, got {predicate.offset}")
        clauses.append(f"skip: {predicate.offset}")
    return clauses


def _where(conditions: List[str]) -> List[str]:
    return [f"where: {{ {', '.join(conditions)} }}"] if conditions else []


def _render(root: str, args: List[str], fields: str) -> str:
    arg_str = f"({', '.join(args)})" if args else ""
    return f"""
      query {{
        {root}{arg_str} {{{fields}
        }}
      }}
    """


def build_attestation_query(predicate: QueryPredicate) -> str:
    conditions = []
    if predicate.schema_id:
        conditions.append(f"schemaId: {_literal(predicate.schema_id)}")
    if predicate.recipient:
        conditions.append(f"recipient: {_literal(predicate.recipient)}")
    if predicate.attester:
        conditions.append(f"attester: {_literal(predicate.attester)}")
    return _render("attestations", _where(conditions) + _pagination(predicate), ATTESTATION_FIELDS)


def build_schema_query(predicate: QueryPredicate) -> str:
    conditions = []
    if predicate.creator:
        conditions.append(f"creator: {_literal(predicate.creator)}")
    return _render("schemas", _where(conditions) + _pagination(predicate), SCHEMA_FIELDS)


def build_uid_query(uids: Sequence[str]) -> str:
    if not uids:
        raise InvalidQueryError("UID list must not be empty")
    members = ", ".join(_literal(uid) for uid in uids)
    return _render("attestations", _where([f"uid_in: [{members}]"]), ATTESTATION_FIELDS)


def build_query(predicate: QueryPredicate) -> str:
    if predicate.kind == QueryKind.SCHEMAS:
        return build_schema_query(predicate)
    if predicate.uids is not None:
        return build_uid_query(predicate.uids)
    return build_attestation_query(predicate)


class IndexerClient:
    def __init__(self, endpoint: str, *, timeout_s: float = 30.0) -> None:
        self.endpoint = endpoint
        self.timeout_s = timeout_s

    def _post(self, query: str) -> dict:
        """
        Send one GraphQL document and return its `data` object.

        A non-2xx status or a dead connection is a TransportError; an `errors`
        array in an otherwise successful response is an IndexerQueryError.
        """
        log.debug("GraphQL Query: %s", query)
        try:
            res = requests.post(
                self.endpoint,
                json={"query": query},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise TransportError(f"GraphQL request failed: {e}") from e

        if not res.ok:
            raise TransportError(f"GraphQL request failed: {res.reason}")

        try:
            body = res.json()
        except ValueError as e:
            raise TransportError(f"GraphQL request failed: invalid JSON body ({e})") from e
        if body.get("errors"):
            raise IndexerQueryError(f"GraphQL errors: {json.dumps(body['errors'])}")
        return body.get("data") or {}

    def execute(self, predicate: QueryPredicate) -> Union[List[AttestationRecord], List[SchemaRecord]]:
        query = build_query(predicate)
        data = self._post(query)

        if predicate.kind == QueryKind.SCHEMAS:
            rows = data.get("schemas") or []
            model = SchemaRecord
        else:
            rows = data.get("attestations") or []
            model = AttestationRecord

        try:
            records = [model.model_validate(row) for row in rows]
        except ValidationError as e:
            raise IndexerQueryError(f"Malformed {predicate.kind.value} in indexer response: {e}") from e

        log.info("Found %d %s", len(records), predicate.kind.value)
        return records

    def query_attestations(
        self,
        schema_id: Optional[str] = None,
        recipient: Optional[str] = None,
        attester: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[AttestationRecord]:
        return self.execute(
            QueryPredicate(
                kind=QueryKind.ATTESTATIONS,
                schema_id=schema_id,
                recipient=recipient,
                attester=attester,
                limit=limit,
                offset=offset,
            )
        )

    def query_schemas(self, creator: Optional[str] = None, limit: Optional[int] = None) -> List[SchemaRecord]:
        return self.execute(QueryPredicate(kind=QueryKind.SCHEMAS, creator=creator, limit=limit))

    def get_attestations_by_uid(self, uids: Iterable[str]) -> List[AttestationRecord]:
        return self.execute(QueryPredicate(kind=QueryKind.ATTESTATIONS, uids=list(uids)))
