# rsk_attest/cli.py
from __future__ import annotations

import argparse
import json
import logging
from typing import Any

from rich.console import Console

from rsk_attest import __version__, codec, demo
from rsk_attest.blockchain import prepare_attestation_data
from rsk_attest.errors import AttestError, EncodingError
from rsk_attest.logger import configure_logging
from rsk_attest.main import get_indexer, get_registry
from rsk_attest.schemas import (
    AttestationRecord,
    IssueSeverity,
    SchemaRecord,
    VerificationResult,
    is_valid_address,
    is_valid_uid,
)
from rsk_attest.settings import settings
from rsk_attest.verification import VerificationEngine, iso_instant

logger = logging.getLogger(__name__)

SEVERITY_ICONS = {
    IssueSeverity.INFO: "[green]✔[/green]",
    IssueSeverity.WARNING: "[yellow]⚠[/yellow]",
    IssueSeverity.FATAL: "[red]✘[/red]",
}
RULE = "=" * 60


def _emit_json(console: Console, payload: Any) -> None:
    console.print_json(json.dumps(payload))


def _print_decoded(console: Console, decoded_json: str | None, indent: str = "  ") -> None:
    if not decoded_json:
        return
    console.print("Decoded Data:")
    try:
        decoded = json.loads(decoded_json)
    except ValueError:
        console.print(f"{indent}Raw: {decoded_json}", markup=False)
        return
    if isinstance(decoded, dict):
        items = decoded.items()
    else:
        # the indexer reports a list of {name, value: {value}} entries
        items = [
            (d.get("name"), (d.get("value") or {}).get("value")) for d in decoded if isinstance(d, dict)
        ]
    for key, value in items:
        console.print(f"{indent}{key}: {value}", markup=False)


def render_attestation(console: Console, a: AttestationRecord) -> None:
    console.print(RULE)
    console.print(f"UID: {a.uid}")
    console.print(f"Schema: {a.schema_.id}")
    console.print(f"Recipient: {a.recipient}")
    console.print(f"Attester: {a.attester}")
    console.print(f"Created: {iso_instant(a.time_created)}")
    console.print(f"Revocable: {'Yes' if a.revocable else 'No'}")
    if a.revocation_time > 0:
        console.print(f"[yellow]Revoked: {iso_instant(a.revocation_time)}[/yellow]")
    if a.expiration_time > 0:
        console.print(f"Expires: {iso_instant(a.expiration_time)}")
    else:
        console.print("Expires: Never")
    _print_decoded(console, a.decoded_data_json)


def render_schema(console: Console, s: SchemaRecord) -> None:
    console.print("=" * 40)
    console.print(f"UID: {s.uid}")
    console.print(f"Creator: {s.creator}")
    console.print(f"Schema: {s.schema_}", markup=False)
    console.print(f"Revocable: {'Yes' if s.revocable else 'No'}")
    if s.time:
        console.print(f"Created: {iso_instant(s.time)}")


def render_verification(console: Console, result: VerificationResult) -> None:
    console.print(f"\nVerification Results for {result.uid}:")
    console.print("=" * 80)
    if result.is_valid:
        console.print("[bold green]ATTESTATION IS VALID[/bold green]")
    else:
        console.print("[bold red]ATTESTATION IS NOT VALID[/bold red]")

    console.print("\nStatus Checks:")
    console.print(f"  Exists: {'Yes' if result.exists else 'No'}")
    console.print(f"  Revoked: {'Yes' if result.is_revoked else 'No'}")
    console.print(f"  Expired: {'Yes' if result.is_expired else 'No'}")

    if result.attestation:
        console.print("\nAttestation Details:")
        render_attestation(console, result.attestation)

    console.print("\nValidation Issues:")
    for index, issue in enumerate(result.issues, start=1):
        console.print(f"  {index}. {SEVERITY_ICONS[issue.severity]} ", end="")
        console.print(issue.message, markup=False)


# ---------- HANDLERS ----------
def _engine():
    return VerificationEngine(get_indexer(), get_registry())


def run_verify(args: argparse.Namespace, console: Console) -> int:
    if not is_valid_uid(args.uid):
        raise AttestError("Invalid UID format. Expected 0x followed by 64 hex characters")
    result = _engine().verify(
        args.uid,
        check_expiration=not args.skip_expiration,
        check_revocation=not args.skip_revocation,
    )
    if args.json:
        _emit_json(console, {"success": True, "verification": result.model_dump(mode="json", by_alias=True)})
    else:
        render_verification(console, result)
    return 0 if result.is_valid else 1


def run_query(args: argparse.Namespace, console: Console) -> int:
    indexer = get_indexer()
    if args.uid:
        if not is_valid_uid(args.uid):
            raise AttestError("Invalid UID format. Expected 0x followed by 64 hex characters")
        records = indexer.get_attestations_by_uid([args.uid])
        if not records:
            if args.json:
                _emit_json(console, {"success": False, "error": "Attestation not found", "uid": args.uid})
            else:
                console.print(f"[red]Attestation not found: {args.uid}[/red]")
            return 1
    else:
        for label, value in (("recipient", args.recipient), ("attester", args.attester)):
            if value and not is_valid_address(value):
                raise AttestError(f"Invalid {label} address format")
        records = indexer.query_attestations(
            schema_id=args.schema,
            recipient=args.recipient,
            attester=args.attester,
            limit=args.limit,
            offset=args.offset,
        )

    if args.json:
        _emit_json(console, {
            "success": True,
            "count": len(records),
            "attestations": [r.model_dump(mode="json", by_alias=True) for r in records],
        })
        return 0
    if not records:
        console.print("No attestations found matching the criteria.")
        return 0
    console.print(f"[green]Found {len(records)} attestation(s):[/green]")
    for record in records:
        render_attestation(console, record)
    return 0


def run_schemas(args: argparse.Namespace, console: Console) -> int:
    if args.creator and not is_valid_address(args.creator):
        raise AttestError("Invalid creator address format")
    schemas = get_indexer().query_schemas(creator=args.creator, limit=args.limit)
    if args.json:
        _emit_json(console, {
            "success": True,
            "count": len(schemas),
            "schemas": [s.model_dump(mode="json", by_alias=True) for s in schemas],
        })
        return 0
    console.print(f"[green]Found {len(schemas)} schema(s):[/green]")
    for schema in schemas:
        render_schema(console, schema)
    return 0


def run_encode(args: argparse.Namespace, console: Console) -> int:
    try:
        values = json.loads(args.data)
    except ValueError as e:
        raise EncodingError(f"--data is not valid JSON: {e}") from e
    if not isinstance(values, dict):
        raise EncodingError("--data must be a JSON object")
    if args.schema:
        definition, encoded = args.schema, codec.encode(args.schema, values)
    else:
        definition, encoded = codec.infer_definition(values), codec.encode_inferred(values)
    if args.json:
        _emit_json(console, {"success": True, "schema": definition, "encoded": encoded})
    else:
        console.print(f"Schema: {definition}", markup=False)
        console.print(f"Encoded: {encoded}")
    return 0


def run_issue(args: argparse.Namespace, console: Console) -> int:
    settings.validate_for_signing()
    if not is_valid_uid(args.schema):
        raise AttestError("Invalid schema UID format. Expected 0x followed by 64 hex characters")
    if not is_valid_address(args.recipient):
        raise AttestError("Invalid recipient address format")

    registry = get_registry()
    logger.info("Using signer: %s", registry.get_signer_address())
    logger.info("Balance: %s RBTC", registry.get_balance())

    payload = prepare_attestation_data(registry, args.schema, args.data)
    receipt = registry.attest(
        schema=args.schema,
        recipient=args.recipient,
        data=payload,
        expiration_time=args.expiration,
        revocable=args.revocable,
        value=args.value,
    )
    if args.json:
        _emit_json(console, {
            "success": True,
            "attestation": {
                **receipt.model_dump(mode="json"),
                "schema": args.schema,
                "recipient": args.recipient,
                "revocable": args.revocable,
            },
        })
        return 0
    console.print("[green]Attestation created successfully![/green]")
    console.print(f"Attestation UID: {receipt.uid}")
    console.print(f"Transaction Hash: {receipt.tx_hash}")
    if receipt.block_number:
        console.print(f"Block Number: {receipt.block_number}")
    return 0


def run_revoke(args: argparse.Namespace, console: Console) -> int:
    settings.validate_for_signing()
    for label, value in (("UID", args.uid), ("schema UID", args.schema)):
        if not is_valid_uid(value):
            raise AttestError(f"Invalid {label} format. Expected 0x followed by 64 hex characters")

    tx = get_registry().revoke(args.schema, args.uid)
    if args.json:
        _emit_json(console, {"success": True, "uid": args.uid, "tx": tx})
    else:
        console.print(f"[green]Attestation revoked:[/green] {args.uid}")
        console.print(f"Transaction Hash: {tx}")
    return 0


def run_demo(args: argparse.Namespace, console: Console) -> int:
    settings.validate_for_signing()
    outcome = demo.run_demo(get_registry(), kind=args.type, create=args.create)
    if args.json:
        _emit_json(console, {"success": True, "demo": outcome})
        return 0

    attestation = outcome["attestation"]
    console.print(f"[bold]{outcome['type']} demo[/bold]")
    console.print(f"Schema UID: {outcome['schema']['uid']}")
    console.print("Demo Data:")
    for key, value in attestation["data"].items():
        console.print(f"  {key}: {value}", markup=False)
    console.print(f"Recipient: {attestation['recipient']}")
    console.print("[green]Demo attestation created![/green]")
    console.print(f"Attestation UID: {attestation['uid']}")
    console.print(f"Transaction Hash: {attestation['txHash']}")
    console.print("\nNext steps:")
    console.print(f"1. Query your attestation: rsk-attest query --uid {attestation['uid']}")
    console.print(f"2. Verify the attestation: rsk-attest verify --uid {attestation['uid']}")
    console.print(f"3. Query by recipient: rsk-attest query --recipient {attestation['recipient']}")
    return 0


def run_config(args: argparse.Namespace, console: Console) -> int:
    view = settings.safe_view()
    if args.json:
        _emit_json(console, view)
        return 0
    net = view["network"]
    console.print("Current Configuration:")
    console.print(f"Network: {net['name']} (Chain ID: {net['chainId']})")
    console.print(f"RPC URL: {net['rpcUrl']}")
    console.print(f"EAS Contract: {net['easContractAddress']}")
    console.print(f"Schema Registry: {net['schemaRegistryAddress']}")
    console.print(f"Indexer: {net['graphqlEndpoint']}")
    console.print(f"Log Level: {view['logLevel']}")
    configured = view["hasPrivateKey"] or view["hasMnemonic"]
    console.print(f"Wallet Configured: {'Yes' if configured else 'No'}")
    return 0


def run_serve(args: argparse.Namespace, console: Console) -> int:
    import uvicorn

    uvicorn.run("rsk_attest.main:app", host=args.host or settings.HOST, port=args.port or settings.PORT)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rsk-attest",
        description="Issue, query, and verify EAS attestations on Rootstock",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    verify = subparsers.add_parser("verify", help="Verify the validity of an attestation")
    verify.add_argument("-u", "--uid", required=True)
    verify.add_argument("--skip-expiration", action="store_true", help="Do not check expiration")
    verify.add_argument("--skip-revocation", action="store_true", help="Do not check revocation")
    verify.add_argument("--json", action="store_true")
    verify.set_defaults(handler=run_verify)

    query = subparsers.add_parser("query", help="Query attestations from the indexer")
    query.add_argument("-s", "--schema", help="Filter by schema UID")
    query.add_argument("-r", "--recipient", help="Filter by recipient address")
    query.add_argument("-a", "--attester", help="Filter by attester address")
    query.add_argument("-u", "--uid", help="Get specific attestation by UID")
    query.add_argument("-l", "--limit", type=int, default=100)
    query.add_argument("-o", "--offset", type=int, default=0)
    query.add_argument("--json", action="store_true")
    query.set_defaults(handler=run_query)

    schemas = subparsers.add_parser("schemas", help="List registered schemas")
    schemas.add_argument("-c", "--creator")
    schemas.add_argument("-l", "--limit", type=int, default=50)
    schemas.add_argument("--json", action="store_true")
    schemas.set_defaults(handler=run_schemas)

    encode = subparsers.add_parser("encode", help="ABI-encode attestation data")
    encode.add_argument("-s", "--schema", help='Schema definition, e.g. "string name,uint256 age"')
    encode.add_argument("-d", "--data", required=True, help="JSON object of field values")
    encode.add_argument("--json", action="store_true")
    encode.set_defaults(handler=run_encode)

    issue = subparsers.add_parser("issue", help="Issue a new attestation on Rootstock")
    issue.add_argument("-s", "--schema", required=True, help="Schema UID for the attestation")
    issue.add_argument("-r", "--recipient", required=True, help="Recipient address for the attestation")
    issue.add_argument("-d", "--data", default="0x", help="Encoded attestation data or JSON object")
    issue.add_argument("-e", "--expiration", type=int, default=0, help="Expiration timestamp (0 for none)")
    issue.add_argument("--no-revocable", dest="revocable", action="store_false", help="Make it non-revocable")
    issue.add_argument("-v", "--value", default="0", help="RBTC value to send with the attestation")
    issue.add_argument("--json", action="store_true")
    issue.set_defaults(handler=run_issue)

    revoke = subparsers.add_parser("revoke", help="Revoke an attestation")
    revoke.add_argument("-u", "--uid", required=True)
    revoke.add_argument("-s", "--schema", required=True, help="Schema UID the attestation was issued under")
    revoke.add_argument("--json", action="store_true")
    revoke.set_defaults(handler=run_revoke)

    demo_cmd = subparsers.add_parser("demo", help="Run a demo attestation scenario")
    demo_cmd.add_argument(
        "-t", "--type", default="hackathon", help="Demo type: hackathon|grant|reputation|badge"
    )
    demo_cmd.add_argument("-c", "--create", action="store_true", help="Register the demo schema if missing")
    demo_cmd.add_argument("--json", action="store_true")
    demo_cmd.set_defaults(handler=run_demo)

    config = subparsers.add_parser("config", help="Show current configuration")
    config.add_argument("--json", action="store_true")
    config.set_defaults(handler=run_config)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    serve.set_defaults(handler=run_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level or settings.LOG_LEVEL)
    console = Console()

    try:
        return args.handler(args, console)
    except AttestError as exc:
        logger.error("%s failed: %s", args.command, exc)
        if getattr(args, "json", False):
            _emit_json(console, {"success": False, "error": str(exc)})
        else:
            console.print(f"[red]Error:[/red] {exc}", markup=True)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
