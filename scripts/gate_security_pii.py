#!/usr/bin/env python3
"""Gate: no customer data or credentials in runtime logs.

Fails if:
- print( found in runtime code (src/**)
- A logger call line names customer data (phone, jid, message text)
  without masking or redaction
- A logger call line names credentials (password, token, apiKey) at all

Usage:
    python scripts/gate_security_pii.py
"""

import re
import sys
from pathlib import Path

# Must go through mask_user_id/safe_log_context when logged
SENSITIVE_KEYWORDS = (
    "payload",
    "request.body",
    "request.json",
    "remote_jid",
    "msg.text",
    "user_id",
    "phone",
)

# Never logged, redacted or not
FORBIDDEN_KEYWORDS = (
    "password",
    "credentials.",
    "api_key",
    "apikey",
    "token",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\("
)

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
    "mask_user_id",
)


def check_file(filepath: Path) -> list[str]:
    """Check a single file for violations. Returns list of error messages."""
    errors = []
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []

    for lineno, line in enumerate(content.splitlines(), start=1):
        code_part = line.split("#")[0]
        if not code_part.strip():
            continue

        if PRINT_PATTERN.search(code_part):
            errors.append(f"{filepath}:{lineno}: print() not allowed in runtime code")

        if not LOGGER_CALL_PATTERN.search(code_part):
            continue
        line_lower = code_part.lower()
        for keyword in FORBIDDEN_KEYWORDS:
            if keyword in line_lower:
                errors.append(f"{filepath}:{lineno}: logger call mentions '{keyword}'")
        has_redaction = any(rp in code_part for rp in REDACTION_PATTERNS)
        for keyword in SENSITIVE_KEYWORDS:
            if keyword in line_lower and not has_redaction:
                errors.append(
                    f"{filepath}:{lineno}: logger call with '{keyword}' "
                    "must use redaction (mask_user_id/safe_log_context)"
                )

    return errors


def check_tree(src_dir: Path) -> list[str]:
    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))
    return all_errors


def main() -> int:
    """Run gate check on src directory."""
    src_dir = Path("src")
    if not src_dir.exists():
        src_dir = Path(__file__).parent.parent / "src"
    if not src_dir.exists():
        sys.stderr.write("Error: src directory not found\n")
        return 1

    all_errors = check_tree(src_dir)
    if all_errors:
        sys.stderr.write("PII gate FAILED - violations found:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("PII gate PASSED - no violations found\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
