#!/usr/bin/env python3
"""Security & PII gate for runtime code (src/**).

Fails if:
- print() is called instead of the JSON logger
- a logger call (its whole text, across lines) mentions a sensitive field
  without routing values through the redaction helpers

Sensitive here means WhatsApp personal data: chat addresses, phone numbers,
names, message text, media links, provider tokens and raw request bodies.

Usage:
    python scripts/gate_security_pii.py [SRC_DIR]
"""

import ast
import sys
from pathlib import Path

SENSITIVE_KEYWORDS = (
    "payload",
    "request.body",
    "request.json",
    "raw_body",
    "chat_id",
    "jid",
    "phone",
    "sender_name",
    "content",
    "media_url",
    "audio_url",
    "token",
)

LOG_METHODS = frozenset({"debug", "info", "warning", "error", "critical", "exception"})

REDACTION_HELPERS = ("safe_log_context", "redact_value", "redact_string")


def _is_logger_call(node: ast.Call) -> bool:
    func = node.func
    return (
        isinstance(func, ast.Attribute)
        and func.attr in LOG_METHODS
        and isinstance(func.value, ast.Name)
        and func.value.id == "logger"
    )


def _is_print(node: ast.Call) -> bool:
    return isinstance(node.func, ast.Name) and node.func.id == "print"


def check_source(source: str, label: str) -> list[str]:
    """Return violations found in one module's source."""
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        return [f"{label}:{e.lineno}: cannot parse ({e.msg})"]

    errors = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.Call):
            continue
        if _is_print(node):
            errors.append(f"{label}:{node.lineno}: print() not allowed in runtime code")
            continue
        if not _is_logger_call(node):
            continue

        text = ast.get_source_segment(source, node) or ""
        if any(helper in text for helper in REDACTION_HELPERS):
            continue
        lowered = text.lower()
        for keyword in SENSITIVE_KEYWORDS:
            if keyword in lowered:
                errors.append(
                    f"{label}:{node.lineno}: logger call with '{keyword}' "
                    "must use redaction (safe_log_context/redact_value)"
                )
    return errors


def check_file(filepath: Path) -> list[str]:
    try:
        source = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []
    return check_source(source, str(filepath))


def main(argv: list[str]) -> int:
    src_dir = Path(argv[1]) if len(argv) > 1 else Path(__file__).resolve().parent.parent / "src"
    if not src_dir.is_dir():
        sys.stderr.write(f"Error: {src_dir} is not a directory\n")
        return 1

    violations: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        violations.extend(check_file(pyfile))

    if violations:
        sys.stderr.write("PII gate FAILED - violations found:\n")
        for violation in violations:
            sys.stderr.write(f"  {violation}\n")
        return 1

    sys.stdout.write("PII gate PASSED\n")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
