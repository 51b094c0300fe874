"""Known Lua language server diagnostic codes and severities."""

DIAGNOSTIC_GROUPS: dict[str, tuple[str, ...]] = {
    "ambiguity": (
        "ambiguity-1",
        "count-down-loop",
        "different-requires",
        "newfield-call",
        "newline-call",
    ),
    "await": ("await-in-sync", "not-yieldable"),
    "codestyle": ("codestyle-check", "name-style-check", "spell-check"),
    "conventions": ("global-element",),
    "duplicate": ("duplicate-index", "duplicate-set-field"),
    "global": (
        "global-in-nil-env",
        "lowercase-global",
        "undefined-env-child",
        "undefined-global",
    ),
    "luadoc": (
        "cast-type-mismatch",
        "circle-doc-class",
        "doc-field-no-class",
        "duplicate-doc-alias",
        "duplicate-doc-field",
        "duplicate-doc-param",
        "incomplete-signature-doc",
        "missing-global-doc",
        "missing-local-export-doc",
        "undefined-doc-class",
        "undefined-doc-name",
        "undefined-doc-param",
        "unknown-cast-variable",
        "unknown-diag-code",
        "unknown-operator",
    ),
    "redefined": ("redefined-local",),
    "strict": ("close-non-object", "deprecated", "discard-returns"),
    "strong": ("no-unknown",),
    "type-check": (
        "assign-type-mismatch",
        "cast-local-type",
        "cast-type-mismatch",
        "inject-field",
        "need-check-nil",
        "param-type-mismatch",
        "return-type-mismatch",
        "undefined-field",
    ),
    "unbalanced": (
        "missing-fields",
        "missing-parameter",
        "missing-return",
        "missing-return-value",
        "redundant-parameter",
        "redundant-return-value",
        "redundant-value",
        "unbalanced-assignments",
    ),
    "unused": (
        "code-after-break",
        "empty-block",
        "redundant-return",
        "trailing-space",
        "unreachable-code",
        "unused-function",
        "unused-label",
        "unused-local",
        "unused-vararg",
    ),
}

DIAGNOSTICS = frozenset(code for codes in DIAGNOSTIC_GROUPS.values() for code in codes)

SEVERITIES = (
    "Error",
    "Warning",
    "Information",
    "Hint",
    "Error!",
    "Warning!",
    "Information!",
    "Hint!",
)


def parse_diagnostic(value: str) -> str:
    """Validate a diagnostic code."""
    code = value.strip()
    if code not in DIAGNOSTICS:
        raise ValueError(f"unknown diagnostic: {value}")
    return code


def parse_severity(value: str) -> str:
    """Parse a severity name case-insensitively into its canonical spelling."""
    lowered = value.strip().lower()
    for severity in SEVERITIES:
        if severity.lower() == lowered:
            return severity
    raise ValueError(f"invalid diagnostic severity: {value}")
