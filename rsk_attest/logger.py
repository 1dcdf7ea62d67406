# rsk_attest/logger.py
import logging
import re
import sys

PRIVATE_KEY_CONTEXT_RE = re.compile(r"private.*key.*[a-fA-F0-9]{64}", re.IGNORECASE)
BARE_KEY_RE = re.compile(r"(?<![0-9a-fA-Fx])(?:0x)?[a-fA-F0-9]{64}(?![0-9a-fA-F])")
MNEMONIC_RE = re.compile(r"mnemonic.*[a-z\s]{20,}", re.IGNORECASE)
ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}(?![0-9a-fA-F])")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def _shorten_address(match: re.Match) -> str:
    addr = match.group(0)
    return f"{addr[:6]}...{addr[-4:]}"


def redact(message: str) -> str:
    """
    Strip secrets out of a log line.

    Private keys and mnemonics are replaced outright; addresses keep their
    first 6 and last 4 characters. 0x-prefixed 64-hex values are UIDs and are
    only treated as keys when the line mentions a private key.
    """
    message = PRIVATE_KEY_CONTEXT_RE.sub("PRIVATE_KEY_REDACTED", message)
    message = MNEMONIC_RE.sub("MNEMONIC_REDACTED", message)
    message = BARE_KEY_RE.sub(
        lambda m: m.group(0) if m.group(0).startswith("0x") else "PRIVATE_KEY_REDACTED",
        message,
    )
    return ADDRESS_RE.sub(_shorten_address, message)


class RedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        return True


class RedactingFormatter(logging.Formatter):
    """Applies the same redaction to tracebacks, which bypass the message filter."""

    def formatException(self, ei) -> str:
        return redact(super().formatException(ei))

    def formatStack(self, stack_info: str) -> str:
        return redact(super().formatStack(stack_info))


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_rsk_attest", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(RedactingFormatter(LOG_FORMAT))
    handler.addFilter(RedactingFilter())
    handler._rsk_attest = True
    root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
