"""
Thunderbird MCP Contract Index
==============================

AUTHORITY: This file is the SINGLE authoritative entrypoint for all
Thunderbird MCP contracts. Import from here, not from individual contract files.
"""

import re

from contracts.thunderbird_contract import (
    # Test Case Index
    TEST_CASES,
    Account,
    AccountNotFoundError,
    AccountsContract,
    BridgeContract,
    BridgeError,
    CalendarContract,
    CalendarInfo,
    CalendarUnavailableError,
    ComposeContract,
    ContactsContract,
    FilterAction,
    FilterRule,
    FiltersContract,
    FiltersUnsupportedError,
    FilterTerm,
    FolderExistsError,
    # Domain Types
    FolderFlag,
    FolderNotFoundError,
    Identity,
    IncomingServer,
    InvalidArgumentError,
    MessageFlag,
    MessageMutationContract,
    MessageNotFoundError,
    MessageReadContract,
    MessageSearchContract,
    ProfileNotFoundError,
    # Error Types
    ThunderbirdMCPError,
    # Contracts (Protocols)
    TransportContract,
    UnknownToolError,
)

__all__ = [
    # Domain Types
    "FolderFlag",
    "MessageFlag",
    "Identity",
    "IncomingServer",
    "Account",
    "FilterTerm",
    "FilterAction",
    "FilterRule",
    "CalendarInfo",
    # Error Types
    "ThunderbirdMCPError",
    "ProfileNotFoundError",
    "AccountNotFoundError",
    "FolderNotFoundError",
    "MessageNotFoundError",
    "InvalidArgumentError",
    "FolderExistsError",
    "CalendarUnavailableError",
    "FiltersUnsupportedError",
    "UnknownToolError",
    "BridgeError",
    # Contracts
    "TransportContract",
    "AccountsContract",
    "MessageSearchContract",
    "MessageReadContract",
    "MessageMutationContract",
    "ComposeContract",
    "ContactsContract",
    "CalendarContract",
    "FiltersContract",
    "BridgeContract",
    # Test Traceability
    "TEST_CASES",
    # Functions
    "audit_contract_coverage",
]

_CONTRACTS = (
    TransportContract,
    AccountsContract,
    MessageSearchContract,
    MessageReadContract,
    MessageMutationContract,
    ComposeContract,
    ContactsContract,
    CalendarContract,
    FiltersContract,
    BridgeContract,
)

_CLAUSE_RE = re.compile(r"\b(?:PRE|POST|INV)-[A-Z]+-\d{2}\b")


def _declared_clauses() -> set[str]:
    """Collect every PRE/POST/INV clause ID from the contract docstrings."""
    clauses: set[str] = set()
    for contract in _CONTRACTS:
        clauses.update(_CLAUSE_RE.findall(contract.__doc__ or ""))
    clauses.add("ERRORS: BRIDGE_UNAVAILABLE")
    return clauses


def audit_contract_coverage() -> dict:
    """
    Audit which contract clauses have test coverage.

    Returns dict with:
    - covered: clauses with at least one test
    - uncovered: clauses with no tests
    - test_count: total tests defined
    - coverage_pct: covered share of declared clauses
    """
    covered_clauses = set()
    for test_info in TEST_CASES.values():
        for clause in test_info.get("enforces", []):
            covered_clauses.add(clause)

    all_clauses = _declared_clauses()
    uncovered = all_clauses - covered_clauses

    return {
        "covered": sorted(covered_clauses & all_clauses),
        "uncovered": sorted(uncovered),
        "test_count": len(TEST_CASES),
        "coverage_pct": round(len(all_clauses - uncovered) / len(all_clauses) * 100, 1),
    }


