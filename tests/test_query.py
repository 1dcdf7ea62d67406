import re
from typing import Any, Dict, List

import pytest
import requests

from rsk_attest import query as mod
from rsk_attest.errors import IndexerQueryError, InvalidQueryError, TransportError
from rsk_attest.query import (
    IndexerClient,
    build_attestation_query,
    build_query,
    build_schema_query,
    build_uid_query,
)
from rsk_attest.schemas import AttestationRecord, QueryKind, QueryPredicate, SchemaRecord

RECIPIENT = "0x" + "aa" * 20
UID_A = "0x" + "01" * 32
UID_B = "0x" + "02" * 32


def _args(query: str) -> str:
    return re.search(r"\w+\((.*)\) \{", query).group(1)


def _where(query: str) -> str:
    m = re.search(r"where: \{ (.*) \}", query)
    return m.group(1) if m else ""


# ---------- BUILDER ----------
def test_recipient_and_limit_only():
    q = build_attestation_query(QueryPredicate(recipient=RECIPIENT, limit=10))

    assert _where(q) == f'recipient: "{RECIPIENT}"'
    assert "first: 10" in _args(q)
    assert "skip" not in q


def test_no_filters_omits_where_clause():
    q = build_attestation_query(QueryPredicate())

    assert _args(q) == "first: 100"
    assert "where" not in q


def test_all_filters_and_offset():
    q = build_attestation_query(
        QueryPredicate(schema_id=UID_A, recipient=RECIPIENT, attester=RECIPIENT, limit=5, offset=20)
    )

    assert _where(q) == f'schemaId: "{UID_A}", recipient: "{RECIPIENT}", attester: "{RECIPIENT}"'
    assert _args(q).endswith("first: 5, skip: 20")


def test_selection_set_matches_indexer_fields():
    q = build_attestation_query(QueryPredicate())
    for field in ("id", "uid", "recipient", "attester", "time", "timeCreated", "revocationTime",
                  "expirationTime", "revocable", "data", "decodedDataJson"):
        assert re.search(rf"^\s+{field}$", q, re.M), field
    assert re.search(r"schema \{\s+id\s+schema\s+\}", q)


def test_schema_query_defaults_to_fifty():
    q = build_schema_query(QueryPredicate(kind=QueryKind.SCHEMAS))

    assert _args(q) == "first: 50"
    assert q.strip().startswith("query {")
    assert "schemas(" in q


def test_schema_query_creator_filter():
    q = build_schema_query(QueryPredicate(kind=QueryKind.SCHEMAS, creator=RECIPIENT, limit=3))
    assert _where(q) == f'creator: "{RECIPIENT}"'
    assert "first: 3" in q


def test_uid_query_preserves_order():
    q = build_uid_query([UID_B, UID_A])
    assert _where(q) == f'uid_in: ["{UID_B}", "{UID_A}"]'
    assert "first" not in _args(q)


def test_empty_uid_list_is_rejected():
    with pytest.raises(InvalidQueryError):
        build_uid_query([])
    with pytest.raises(InvalidQueryError):
        build_query(QueryPredicate(uids=[]))


@pytest.mark.parametrize("predicate", [QueryPredicate(limit=0), QueryPredicate(limit=-5), QueryPredicate(offset=-1)])
def test_bad_pagination_is_rejected(predicate):
    with pytest.raises(InvalidQueryError):
        build_attestation_query(predicate)


def test_values_are_escaped():
    q = build_attestation_query(QueryPredicate(recipient='x" } attestations { uid'))
    assert _where(q) == r'recipient: "x\" } attestations { uid"'


def test_build_query_dispatch():
    assert "uid_in" in build_query(QueryPredicate(uids=[UID_A]))
    assert "schemas(" in build_query(QueryPredicate(kind=QueryKind.SCHEMAS))
    assert "attestations(first: 100)" in build_query(QueryPredicate())


# ---------- CLIENT ----------
class _Resp:
    def __init__(self, body=None, ok=True, reason="OK"):
        self._body = body
        self.ok = ok
        self.reason = reason

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


def _patch_post(monkeypatch, response) -> List[Dict[str, Any]]:
    calls: List[Dict[str, Any]] = []

    def fake_post(url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float):  # noqa: A002
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(mod.requests, "post", fake_post)
    return calls


ROW = {
    "id": UID_A,
    "uid": UID_A,
    "schema": {"id": UID_B, "schema": "string name"},
    "recipient": RECIPIENT,
    "attester": RECIPIENT,
    "time": 1690000000,
    "timeCreated": "1690000000",
    "revocationTime": "1700000000",
    "expirationTime": 0,
    "revocable": True,
    "data": "0x",
    "decodedDataJson": "[]",
}


def test_execute_posts_query_and_normalizes(monkeypatch):
    calls = _patch_post(monkeypatch, _Resp({"data": {"attestations": [ROW]}}))
    client = IndexerClient("https://indexer.test/graphql", timeout_s=7.0)

    records = client.query_attestations(recipient=RECIPIENT, limit=10)

    assert len(calls) == 1
    assert calls[0]["url"] == "https://indexer.test/graphql"
    assert calls[0]["timeout"] == 7.0
    assert calls[0]["headers"]["Content-Type"] == "application/json"
    assert f'recipient: "{RECIPIENT}"' in calls[0]["json"]["query"]
    assert len(records) == 1
    rec = records[0]
    assert isinstance(rec, AttestationRecord)
    assert rec.revocation_time == 1700000000
    assert rec.time_created == 1690000000
    assert rec.schema_.schema_ == "string name"


def test_no_matches_returns_empty_list(monkeypatch):
    _patch_post(monkeypatch, _Resp({"data": {"attestations": []}}))
    assert IndexerClient("http://x").get_attestations_by_uid([UID_A]) == []


def test_missing_data_returns_empty_list(monkeypatch):
    _patch_post(monkeypatch, _Resp({"data": None}))
    assert IndexerClient("http://x").query_attestations() == []


def test_schema_query_returns_schema_records(monkeypatch):
    row = {"id": UID_B, "schema": "string name", "creator": RECIPIENT,
           "resolver": "0x" + "00" * 20, "revocable": True, "time": 1690000000}
    _patch_post(monkeypatch, _Resp({"data": {"schemas": [row]}}))

    schemas = IndexerClient("http://x").query_schemas()

    assert schemas == [SchemaRecord.model_validate(row)]
    assert schemas[0].uid == UID_B


def test_non_2xx_is_transport_error(monkeypatch):
    _patch_post(monkeypatch, _Resp(ok=False, reason="Bad Gateway"))
    with pytest.raises(TransportError, match="GraphQL request failed: Bad Gateway"):
        IndexerClient("http://x").query_attestations()


def test_connection_failure_is_transport_error(monkeypatch):
    _patch_post(monkeypatch, requests.ConnectionError("refused"))
    with pytest.raises(TransportError):
        IndexerClient("http://x").query_attestations()


def test_non_json_body_is_transport_error(monkeypatch):
    _patch_post(monkeypatch, _Resp(ValueError("Expecting value")))
    with pytest.raises(TransportError):
        IndexerClient("http://x").query_attestations()


def test_graphql_errors_are_query_errors(monkeypatch):
    _patch_post(monkeypatch, _Resp({"errors": [{"message": "Unknown argument"}], "data": None}))
    with pytest.raises(IndexerQueryError, match="GraphQL errors: .*Unknown argument"):
        IndexerClient("http://x").query_attestations()


def test_invalid_predicate_never_hits_network(monkeypatch):
    calls = _patch_post(monkeypatch, _Resp({"data": {}}))
    with pytest.raises(InvalidQueryError):
        IndexerClient("http://x").get_attestations_by_uid([])
    assert calls == []
