"""
Message Filters
===============

Filter rules are kept per incoming server in msgFilterRules.dat. The file is
a sequence of key="value" lines: a version/logging header, then for every
filter its name, enabled flag, type, action/actionValue pairs and a single
condition line such as

    condition="AND (subject,contains,invoice) OR (from,contains,billing)"

Tool arguments use camelCase names for attributes, operators and actions
(numeric codes are accepted too); the file uses Thunderbird's own spelling.

CONTRACT CLAUSES:
- POST-FILTERS-01/02: listFilters shape
- POST-FILTERS-03: Every mutation is written back to msgFilterRules.dat
- POST-FILTERS-04: Unknown names are rejected
- POST-FILTERS-05: applyFilters result shape
- INV-FILTERS-01: Order is only changed by reorderFilters
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from contracts import (
    Account,
    FilterAction,
    FilterRule,
    FiltersUnsupportedError,
    FilterTerm,
    FolderFlag,
    InvalidArgumentError,
    MessageFlag,
)
from src.thunderbird_mcp import mime
from src.thunderbird_mcp.mail_store import Folder, MailStore, StoredMessage, coerce_bool
from src.thunderbird_mcp.profile import Profile

logger = logging.getLogger("thunderbird-mcp.filters")

FILTER_FILE = "msgFilterRules.dat"
FILE_VERSION = "9"
DEFAULT_FILTER_TYPE = 17  # inbox + manual
MANUAL_FILTER_BIT = 16

ATTRIB_MAP = {
    "subject": 0, "from": 1, "body": 2, "date": 3, "priority": 4,
    "status": 5, "to": 6, "cc": 7, "toOrCc": 8, "allAddresses": 9,
    "ageInDays": 10, "size": 11, "tag": 12, "hasAttachment": 13,
    "junkStatus": 14, "junkPercent": 15, "otherHeader": 16,
}
ATTRIB_NAMES = {v: k for k, v in ATTRIB_MAP.items()}

OP_MAP = {
    "contains": 0, "doesntContain": 1, "is": 2, "isnt": 3, "isEmpty": 4,
    "isBefore": 5, "isAfter": 6, "isHigherThan": 7, "isLowerThan": 8,
    "beginsWith": 9, "endsWith": 10, "isInAB": 11, "isntInAB": 12,
    "isGreaterThan": 13, "isLessThan": 14, "matches": 15, "doesntMatch": 16,
    "isntEmpty": 17,
}
OP_NAMES = {v: k for k, v in OP_MAP.items()}

ACTION_MAP = {
    "moveToFolder": 0x01, "copyToFolder": 0x02, "changePriority": 0x03,
    "delete": 0x04, "markRead": 0x05, "killThread": 0x06,
    "watchThread": 0x07, "markFlagged": 0x08, "reply": 0x0A,
    "forward": 0x0B, "stopExecution": 0x0C, "deleteFromServer": 0x0D,
    "leaveOnServer": 0x0E, "junkScore": 0x0F, "addTag": 0x11,
    "markUnread": 0x14, "custom": 0x15,
}
ACTION_NAMES = {v: k for k, v in ACTION_MAP.items()}

OTHER_HEADER = ATTRIB_MAP["otherHeader"]
UNKNOWN_ACTION = 0

# Spelling used inside msgFilterRules.dat.
_FILE_ATTRIBS = {
    0: "subject", 1: "from", 2: "body", 3: "date", 4: "priority", 5: "status",
    6: "to", 7: "cc", 8: "to or cc", 9: "all addresses", 10: "age in days",
    11: "size", 12: "tag", 13: "has attachment status", 14: "junk status",
    15: "junk percent",
}
_FILE_OPS = {
    0: "contains", 1: "doesn't contain", 2: "is", 3: "isn't", 4: "is empty",
    5: "is before", 6: "is after", 7: "is higher than", 8: "is lower than",
    9: "begins with", 10: "ends with", 11: "is in ab", 12: "isn't in ab",
    13: "is greater than", 14: "is less than", 15: "matches", 16: "doesn't match",
    17: "isn't empty",
}
_FILE_ACTIONS = {
    0x01: "Move to folder", 0x02: "Copy to folder", 0x03: "Change priority",
    0x04: "Delete", 0x05: "Mark read", 0x06: "Kill thread", 0x07: "Watch thread",
    0x08: "Mark flagged", 0x0A: "Reply", 0x0B: "Forward", 0x0C: "Stop execution",
    0x0D: "Delete from Pop3 server", 0x0E: "Leave on Pop3 server",
    0x0F: "JunkScore", 0x11: "AddTag", 0x14: "Mark unread", 0x15: "Custom",
}
_FILE_ATTRIB_CODES = {v: k for k, v in _FILE_ATTRIBS.items()}
_FILE_OP_CODES = {v: k for k, v in _FILE_OPS.items()}
_FILE_ACTION_CODES = {v.lower(): k for k, v in _FILE_ACTIONS.items()}

PRIORITY_NAMES = {0: "", 1: "None", 2: "Lowest", 3: "Low", 4: "Normal", 5: "High", 6: "Highest"}
_PRIORITY_CODES = {v.lower(): k for k, v in PRIORITY_NAMES.items() if v}

_LINE_RE = re.compile(r'^(\w+)="(.*)"\s*$')


# =============================================================================
# FILE FORMAT
# =============================================================================

@dataclass
class FilterList:
    """Filters of one server, in evaluation order."""

    path: Path
    filters: list[FilterRule] = field(default_factory=list)
    logging_enabled: bool = False


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _quote_term_value(value: str) -> str:
    if ")" in value or value.startswith('"'):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return value


def _read_term_field(text: str, pos: int, stops: str) -> tuple[str, int, bool]:
    """One comma-separated field of a term; quoted fields may contain anything."""
    if pos < len(text) and text[pos] == '"':
        pos += 1
        chars = []
        while pos < len(text) and text[pos] != '"':
            if text[pos] == "\\" and pos + 1 < len(text):
                pos += 1
            chars.append(text[pos])
            pos += 1
        return "".join(chars), pos + 1, True
    end = pos
    while end < len(text) and text[end] not in stops:
        end += 1
    return text[pos:end], end, False


def parse_condition(condition: str) -> list[FilterTerm]:
    """Terms of a condition line; "ALL" means no terms (match everything)."""
    text = condition.strip()
    if not text or text.upper() == "ALL":
        return []

    terms: list[FilterTerm] = []
    pos = 0
    while pos < len(text):
        while pos < len(text) and text[pos] == " ":
            pos += 1
        if pos >= len(text):
            break
        boolean_and = True
        if text.startswith("AND", pos):
            pos += 3
        elif text.startswith("OR", pos):
            boolean_and = False
            pos += 2
        while pos < len(text) and text[pos] == " ":
            pos += 1
        if pos >= len(text) or text[pos] != "(":
            raise ValueError(f"Malformed condition near: {text[pos:pos + 20]}")
        pos += 1

        attrib_text, pos, attrib_quoted = _read_term_field(text, pos, ",")
        pos += 1
        op_text, pos, _ = _read_term_field(text, pos, ",")
        pos += 1
        value, pos, _ = _read_term_field(text, pos, ")")
        while pos < len(text) and text[pos] != ")":
            pos += 1
        pos += 1

        op = _FILE_OP_CODES.get(op_text)
        if op is None:
            raise ValueError(f"Unknown operator in filter file: {op_text}")
        if attrib_quoted or attrib_text not in _FILE_ATTRIB_CODES:
            terms.append(FilterTerm(OTHER_HEADER, op, value, boolean_and, header=attrib_text))
        else:
            terms.append(FilterTerm(_FILE_ATTRIB_CODES[attrib_text], op, value, boolean_and))
    return terms


def format_condition(terms: list[FilterTerm]) -> str:
    if not terms:
        return "ALL"
    parts = []
    for term in terms:
        if term.attrib == OTHER_HEADER or term.attrib not in _FILE_ATTRIBS:
            attrib = '"' + (term.header or "").replace('"', '\\"') + '"'
        else:
            attrib = _FILE_ATTRIBS[term.attrib]
        op = _FILE_OPS.get(term.op, str(term.op))
        joiner = "AND" if term.boolean_and else "OR"
        parts.append(f"{joiner} ({attrib},{op},{_quote_term_value(term.value)})")
    return " ".join(parts)


def _action_value_from_file(action_type: int, raw: str) -> str:
    if action_type == ACTION_MAP["changePriority"]:
        return str(_PRIORITY_CODES.get(raw.lower(), raw))
    return raw


def _action_value_to_file(action: FilterAction) -> str:
    if action.type == ACTION_MAP["changePriority"]:
        try:
            return PRIORITY_NAMES.get(int(action.value), action.value)
        except ValueError:
            return action.value
    return action.value


def parse_filter_file(text: str, path: Path) -> FilterList:
    """Parse msgFilterRules.dat content; unknown lines are skipped."""
    filter_list = FilterList(path=path)
    current: FilterRule | None = None
    for line in text.splitlines():
        match = _LINE_RE.match(line.strip())
        if not match:
            continue
        key, value = match.group(1), _unescape(match.group(2))
        if key == "logging":
            filter_list.logging_enabled = value == "yes"
        elif key == "name":
            current = FilterRule(name=value)
            filter_list.filters.append(current)
        elif current is None:
            continue
        elif key == "enabled":
            current.enabled = value == "yes"
        elif key == "type":
            try:
                current.type = int(value)
            except ValueError:
                logger.debug("Bad filter type for %s", current.name)
        elif key == "action":
            action_type = _FILE_ACTION_CODES.get(value.lower())
            if action_type is None:
                logger.debug("Keeping unknown filter action %s as is", value)
                current.actions.append(FilterAction(UNKNOWN_ACTION, file_name=value))
            else:
                current.actions.append(FilterAction(action_type))
        elif key == "customId" and current.actions:
            current.actions[-1].custom_id = value
        elif key == "actionValue" and current.actions:
            last = current.actions[-1]
            last.value = _action_value_from_file(last.type, value)
        elif key == "condition":
            try:
                current.terms = parse_condition(value)
                current.raw_condition = None
            except ValueError as e:
                logger.warning("Unreadable condition in filter %s: %s", current.name, e)
                current.terms = []
                current.raw_condition = value
    return filter_list


def format_filter_file(filter_list: FilterList) -> str:
    lines = [
        f'version="{FILE_VERSION}"',
        f'logging="{"yes" if filter_list.logging_enabled else "no"}"',
    ]
    for rule in filter_list.filters:
        if rule.temporary:
            continue
        lines.append(f'name="{_escape(rule.name)}"')
        lines.append(f'enabled="{"yes" if rule.enabled else "no"}"')
        lines.append(f'type="{rule.type}"')
        for action in rule.actions:
            file_name = action.file_name or _FILE_ACTIONS.get(action.type, "Custom")
            lines.append(f'action="{_escape(file_name)}"')
            if action.custom_id:
                lines.append(f'customId="{_escape(action.custom_id)}"')
            if action.value:
                lines.append(f'actionValue="{_escape(_action_value_to_file(action))}"')
        if rule.raw_condition is not None:
            condition = rule.raw_condition
        else:
            condition = format_condition(rule.terms)
        lines.append(f'condition="{_escape(condition)}"')
    return "\n".join(lines) + "\n"


# =============================================================================
# TOOL ARGUMENTS
# =============================================================================

def _code(value, names: dict[str, int], label: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value if value is not None else "")
    if text in names:
        return names[text]
    try:
        return int(text)
    except ValueError:
        raise InvalidArgumentError(f"Unknown {label}: {value}") from None


def _json_list(value, label: str) -> list:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            pass
    if not isinstance(value, list) or not value:
        raise InvalidArgumentError(f"{label} must be a non-empty array")
    return value


def _int_arg(value, message: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(message) from None


def build_terms(conditions: list) -> list[FilterTerm]:
    terms = []
    for condition in conditions:
        if not isinstance(condition, dict):
            raise InvalidArgumentError("Each condition must be an object")
        header = condition.get("header") or None
        terms.append(
            FilterTerm(
                attrib=_code(condition.get("attrib"), ATTRIB_MAP, "attribute"),
                op=_code(condition.get("op"), OP_MAP, "operator"),
                value=str(condition.get("value") or ""),
                boolean_and=condition.get("booleanAnd") is not False,
                header=header,
            )
        )
    return terms


def build_actions(actions: list) -> list[FilterAction]:
    built = []
    for action in actions:
        if not isinstance(action, dict):
            raise InvalidArgumentError("Each action must be an object")
        built.append(
            FilterAction(
                type=_code(action.get("type"), ACTION_MAP, "action type"),
                value=str(action.get("value") or ""),
                custom_id=str(action.get("customId") or ""),
            )
        )
    return built


def serialize_filter(rule: FilterRule, index: int) -> dict:
    terms = []
    for term in rule.terms:
        entry = {
            "attrib": ATTRIB_NAMES.get(term.attrib, str(term.attrib)),
            "op": OP_NAMES.get(term.op, str(term.op)),
            "booleanAnd": term.boolean_and,
            "value": term.value,
        }
        if term.header:
            entry["header"] = term.header
        terms.append(entry)
    actions = []
    for action in rule.actions:
        entry = {"type": action.file_name or ACTION_NAMES.get(action.type, str(action.type))}
        if action.custom_id:
            entry["customId"] = action.custom_id
        if action.value:
            entry["value"] = action.value
        actions.append(entry)
    result = {
        "index": index,
        "name": rule.name,
        "enabled": rule.enabled,
        "type": rule.type,
        "temporary": rule.temporary,
        "terms": terms,
        "actions": actions,
    }
    if rule.raw_condition is not None:
        result["unparsedCondition"] = rule.raw_condition
    return result


# =============================================================================
# EVALUATION
# =============================================================================

def _parse_term_date(value: str) -> datetime | None:
    for fmt in ("%d-%b-%Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(value.strip(), fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def _priority(msg) -> int:
    raw = str(msg.get("X-Priority", "") or "").strip()
    if not raw:
        return 0
    try:
        # X-Priority counts 1 (highest) to 5 (lowest)
        return 7 - int(raw.split()[0])
    except ValueError:
        return _PRIORITY_CODES.get(raw.lower(), 0)


def _match_text(op: int, actual: str, expected: str) -> bool:
    actual_l, expected_l = actual.lower(), expected.lower()
    if op == OP_MAP["contains"]:
        return expected_l in actual_l
    if op == OP_MAP["doesntContain"]:
        return expected_l not in actual_l
    if op == OP_MAP["is"]:
        return actual_l == expected_l
    if op == OP_MAP["isnt"]:
        return actual_l != expected_l
    if op == OP_MAP["isEmpty"]:
        return not actual
    if op == OP_MAP["isntEmpty"]:
        return bool(actual)
    if op == OP_MAP["beginsWith"]:
        return actual_l.startswith(expected_l)
    if op == OP_MAP["endsWith"]:
        return actual_l.endswith(expected_l)
    if op in (OP_MAP["matches"], OP_MAP["doesntMatch"]):
        try:
            found = re.search(expected, actual, re.IGNORECASE) is not None
        except re.error:
            return False
        return found if op == OP_MAP["matches"] else not found
    return False


def _match_number(op: int, actual: float, expected: float) -> bool:
    if op in (OP_MAP["isGreaterThan"], OP_MAP["isHigherThan"], OP_MAP["isAfter"]):
        return actual > expected
    if op in (OP_MAP["isLessThan"], OP_MAP["isLowerThan"], OP_MAP["isBefore"]):
        return actual < expected
    if op == OP_MAP["is"]:
        return actual == expected
    if op == OP_MAP["isnt"]:
        return actual != expected
    return False


def term_matches(term: FilterTerm, stored: StoredMessage, msg) -> bool | None:
    """Evaluate one term; None when the attribute cannot be checked here."""
    attrib, op = term.attrib, term.op
    text_fields = {
        ATTRIB_MAP["subject"]: stored.subject,
        ATTRIB_MAP["from"]: stored.author,
        ATTRIB_MAP["to"]: stored.recipients,
        ATTRIB_MAP["cc"]: stored.cc_list,
        ATTRIB_MAP["toOrCc"]: f"{stored.recipients}, {stored.cc_list}",
        ATTRIB_MAP["allAddresses"]: f"{stored.author}, {stored.recipients}, {stored.cc_list}",
    }
    if attrib in text_fields:
        return _match_text(op, text_fields[attrib], term.value)
    if attrib == ATTRIB_MAP["body"]:
        return _match_text(op, mime.plaintext_body(msg), term.value)
    if attrib == OTHER_HEADER:
        actual = mime.decode_header_value(msg.get(term.header or "", ""))
        return _match_text(op, actual, term.value)
    if attrib == ATTRIB_MAP["date"]:
        expected = _parse_term_date(term.value)
        if expected is None:
            return None
        actual = stored.timestamp.astimezone(timezone.utc).date()
        return _match_number(op, actual.toordinal(), expected.date().toordinal())
    if attrib == ATTRIB_MAP["ageInDays"]:
        age = (datetime.now(timezone.utc) - stored.timestamp).days
        try:
            return _match_number(op, age, float(term.value))
        except ValueError:
            return None
    if attrib == ATTRIB_MAP["size"]:
        try:
            return _match_number(op, len(msg.as_bytes()) / 1024, float(term.value))
        except ValueError:
            return None
    if attrib == ATTRIB_MAP["priority"]:
        expected = _PRIORITY_CODES.get(term.value.lower())
        if expected is None:
            try:
                expected = int(term.value)
            except ValueError:
                return None
        return _match_number(op, _priority(msg), expected)
    if attrib == ATTRIB_MAP["tag"]:
        keywords = [k.lower() for k in stored.keywords]
        expected = term.value.lower()
        if op in (OP_MAP["contains"], OP_MAP["is"]):
            return expected in keywords
        if op in (OP_MAP["doesntContain"], OP_MAP["isnt"]):
            return expected not in keywords
        if op == OP_MAP["isEmpty"]:
            return not keywords
        if op == OP_MAP["isntEmpty"]:
            return bool(keywords)
        return None
    if attrib == ATTRIB_MAP["status"]:
        bits = {"read": MessageFlag.READ, "flagged": MessageFlag.MARKED,
                "replied": MessageFlag.REPLIED, "forwarded": MessageFlag.FORWARDED}
        bit = bits.get(term.value.lower())
        if bit is None:
            return None
        has = bool(stored.status & bit)
        return has if op == OP_MAP["is"] else not has
    if attrib == ATTRIB_MAP["hasAttachment"]:
        has = bool(mime.attachment_parts(msg))
        wanted = term.value.lower() in ("true", "yes", "1", "has attachments")
        return (has == wanted) if op == OP_MAP["is"] else (has != wanted)
    return None


def rule_matches(rule: FilterRule, stored: StoredMessage, msg) -> bool:
    """Left-to-right evaluation; each term joins with its own AND/OR."""
    if rule.raw_condition is not None:
        return False
    if not rule.terms:
        return True
    result: bool | None = None
    for term in rule.terms:
        value = bool(term_matches(term, stored, msg))
        if result is None:
            result = value
        elif term.boolean_and:
            result = result and value
        else:
            result = result or value
    return bool(result)


@dataclass
class _Plan:
    """Accumulated effect of all matching filters on one message."""

    set_bits: int = 0
    clear_bits: int = 0
    keywords: list[str] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    copies: list[str] = field(default_factory=list)
    move_to: str | None = None
    delete: bool = False

    @property
    def changes_state(self) -> bool:
        return bool(self.set_bits or self.clear_bits or self.keywords or self.headers)


# =============================================================================
# SERVICE
# =============================================================================

class FilterService:
    """Filter tools for every account that can hold filters."""

    SUPPORTED_ACTIONS = {
        ACTION_MAP["moveToFolder"], ACTION_MAP["copyToFolder"], ACTION_MAP["changePriority"],
        ACTION_MAP["delete"], ACTION_MAP["markRead"], ACTION_MAP["markUnread"],
        ACTION_MAP["markFlagged"], ACTION_MAP["addTag"], ACTION_MAP["stopExecution"],
    }

    def __init__(self, profile: Profile, store: MailStore) -> None:
        self.profile = profile
        self.store = store

    def _filter_account(self, account_id: str) -> Account:
        account = self.profile.get_account(account_id)
        if not account.server.can_have_filters:
            raise FiltersUnsupportedError("Account does not support filters")
        return account

    @staticmethod
    def load(account: Account) -> FilterList:
        path = account.server.directory / FILTER_FILE
        if not path.is_file():
            return FilterList(path=path)
        return parse_filter_file(path.read_text(encoding="utf-8", errors="replace"), path)

    @staticmethod
    def save(filter_list: FilterList) -> None:
        filter_list.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = filter_list.path.with_name(filter_list.path.name + ".tmp")
        tmp.write_text(format_filter_file(filter_list), encoding="utf-8")
        tmp.replace(filter_list.path)

    @staticmethod
    def _index(filter_list: FilterList, value, label: str = "filter index") -> int:
        index = _int_arg(value, f"Invalid {label}: {value}")
        if index < 0 or index >= len(filter_list.filters):
            raise InvalidArgumentError(f"Invalid {label}: {value}")
        return index

    # -- tools ---------------------------------------------------------------

    def list_filters(self, account_id: str | None = None) -> list[dict]:
        accounts = [self.profile.get_account(account_id)] if account_id else self.profile.accounts()
        results = []
        for account in accounts:
            if not account.server.can_have_filters:
                continue
            try:
                filter_list = self.load(account)
            except OSError as e:
                logger.debug("Skipping filters of %s: %s", account.key, e)
                continue
            results.append(
                {
                    "accountId": account.key,
                    "accountName": mime.sanitize_for_json(account.server.pretty_name),
                    "filterCount": len(filter_list.filters),
                    "loggingEnabled": filter_list.logging_enabled,
                    "filters": [serialize_filter(r, i) for i, r in enumerate(filter_list.filters)],
                }
            )
        return results

    def create_filter(
        self,
        account_id,
        name,
        conditions,
        actions,
        enabled=True,
        filter_type=None,
        insert_at_index=None,
    ) -> dict:
        conditions = _json_list(conditions, "conditions")
        actions = _json_list(actions, "actions")
        if isinstance(enabled, str):
            enabled = coerce_bool(enabled)

        account = self._filter_account(account_id)
        filter_list = self.load(account)
        rule = FilterRule(
            name=str(name),
            enabled=enabled is not False,
            type=(
                _int_arg(filter_type, f"Invalid filter type: {filter_type}")
                if filter_type
                else DEFAULT_FILTER_TYPE
            ),
            terms=build_terms(conditions),
            actions=build_actions(actions),
        )

        index = len(filter_list.filters)
        if insert_at_index is not None and insert_at_index != "":
            requested = _int_arg(insert_at_index, f"Invalid insertAtIndex: {insert_at_index}")
            if requested >= 0:
                index = min(requested, len(filter_list.filters))
        filter_list.filters.insert(index, rule)
        self.save(filter_list)

        logger.info("Created filter at index %d for account %s", index, account.key)
        return {
            "success": True,
            "name": rule.name,
            "index": index,
            "filterCount": len(filter_list.filters),
        }

    def update_filter(
        self,
        account_id,
        filter_index,
        name=None,
        enabled=None,
        filter_type=None,
        conditions=None,
        actions=None,
    ) -> dict:
        account = self._filter_account(account_id)
        filter_list = self.load(account)
        index = self._index(filter_list, filter_index)
        rule = filter_list.filters[index]

        if isinstance(enabled, str):
            enabled = coerce_bool(enabled)
        if isinstance(conditions, str):
            try:
                conditions = json.loads(conditions)
            except ValueError:
                pass
        if isinstance(actions, str):
            try:
                actions = json.loads(actions)
            except ValueError:
                pass

        changes = []
        if name is not None:
            rule.name = str(name)
            changes.append("name")
        if enabled is not None:
            rule.enabled = bool(enabled)
            changes.append("enabled")
        if filter_type is not None:
            rule.type = _int_arg(filter_type, f"Invalid filter type: {filter_type}")
            changes.append("type")
        if isinstance(conditions, list) and conditions:
            rule.terms = build_terms(conditions)
            rule.raw_condition = None
            changes.append("conditions")
        if isinstance(actions, list) and actions:
            rule.actions = build_actions(actions)
            changes.append("actions")

        self.save(filter_list)
        logger.info("Updated filter %d of account %s: %s", index, account.key, changes)
        return {"success": True, "changes": changes, "filter": serialize_filter(rule, index)}

    def delete_filter(self, account_id, filter_index) -> dict:
        account = self._filter_account(account_id)
        filter_list = self.load(account)
        index = self._index(filter_list, filter_index)
        removed = filter_list.filters.pop(index)
        self.save(filter_list)

        logger.info("Deleted filter %d of account %s", index, account.key)
        return {"success": True, "deleted": removed.name, "remainingCount": len(filter_list.filters)}

    def reorder_filters(self, account_id, from_index, to_index) -> dict:
        account = self._filter_account(account_id)
        filter_list = self.load(account)
        source = self._index(filter_list, from_index, "source index")
        target = self._index(filter_list, to_index, "target index")

        rule = filter_list.filters.pop(source)
        filter_list.filters.insert(target, rule)
        self.save(filter_list)

        logger.info("Moved filter %d to %d for account %s", source, target, account.key)
        return {"success": True, "name": rule.name, "fromIndex": source, "toIndex": target}

    def apply_filters(self, account_id, folder_path) -> dict:
        """
        Run the account's enabled manual filters over one folder.

        Supported actions: move, copy, priority, delete, read, unread, flag,
        tag and stop. Other action types are reported, not performed.
        """
        account = self._filter_account(account_id)
        filter_list = self.load(account)
        folder = self.store.find_folder(folder_path)
        enabled = [rule for rule in filter_list.filters if rule.enabled]
        manual = [rule for rule in enabled if rule.type & MANUAL_FILTER_BIT]
        runnable = [rule for rule in manual if rule.raw_condition is None]
        skipped = [rule.name for rule in manual if rule.raw_condition is not None]
        if skipped:
            logger.warning("Skipping filters with unreadable conditions: %s", skipped)

        plans: dict[int, _Plan] = {}
        unsupported: set[str] = set()
        for stored, msg in self.store.read_messages(folder):
            plan = _Plan()
            matched = False
            for rule in runnable:
                if not rule_matches(rule, stored, msg):
                    continue
                matched = True
                if self._plan_actions(rule, plan, unsupported):
                    break
            if matched:
                plans[stored.key] = plan

        self._execute(folder, account, plans)
        logger.info("Applied %d filters to %s: %d messages matched", len(runnable), folder.uri, len(plans))

        result = {
            "success": True,
            "message": f"Filters applied: {len(plans)} message(s) matched",
            "folder": folder_path,
            "enabledFilters": len(enabled),
            "matchedMessages": len(plans),
        }
        if unsupported:
            result["unsupportedActions"] = sorted(unsupported)
        if skipped:
            result["skippedFilters"] = skipped
        return result

    def _plan_actions(self, rule: FilterRule, plan: _Plan, unsupported: set[str]) -> bool:
        """Fold one rule's actions into the plan; True when execution stops."""
        for action in rule.actions:
            kind = action.type
            if kind not in self.SUPPORTED_ACTIONS:
                unsupported.add(action.file_name or ACTION_NAMES.get(kind, str(kind)))
            elif kind == ACTION_MAP["markRead"]:
                plan.set_bits |= MessageFlag.READ
                plan.clear_bits &= ~MessageFlag.READ
            elif kind == ACTION_MAP["markUnread"]:
                plan.clear_bits |= MessageFlag.READ
                plan.set_bits &= ~MessageFlag.READ
            elif kind == ACTION_MAP["markFlagged"]:
                plan.set_bits |= MessageFlag.MARKED
            elif kind == ACTION_MAP["addTag"] and action.value:
                if action.value not in plan.keywords:
                    plan.keywords.append(action.value)
            elif kind == ACTION_MAP["changePriority"]:
                try:
                    level = int(action.value)
                except ValueError:
                    level = _PRIORITY_CODES.get(action.value.lower(), 0)
                if 2 <= level <= 6:
                    plan.headers["X-Priority"] = f"{7 - level} ({PRIORITY_NAMES[level]})"
            elif kind == ACTION_MAP["copyToFolder"] and action.value:
                plan.copies.append(action.value)
            elif kind == ACTION_MAP["moveToFolder"] and action.value:
                plan.move_to = action.value
                return True
            elif kind == ACTION_MAP["delete"]:
                plan.delete = True
                return True
            elif kind == ACTION_MAP["stopExecution"]:
                return True
        return False

    def _execute(self, folder: Folder, account: Account, plans: dict[int, _Plan]) -> None:
        targets: dict[str, Folder] = {}
        for plan in plans.values():
            for uri in plan.copies + ([plan.move_to] if plan.move_to else []):
                if uri not in targets:
                    targets[uri] = self.store.find_folder(uri)
        trash = None
        if any(plan.delete for plan in plans.values()):
            trash = self.store.find_special_folder(account, FolderFlag.TRASH)

        # State changes and copies keep message keys stable; removals go last.
        for key, plan in plans.items():
            if plan.changes_state:
                self.store.update_flags(
                    folder, [key], plan.set_bits, plan.clear_bits, plan.keywords, plan.headers
                )

        transfers: dict[str, list[int]] = {}
        removed: list[int] = []
        for key, plan in plans.items():
            for uri in plan.copies:
                transfers.setdefault(uri, []).append(key)
            if plan.move_to and targets[plan.move_to] != folder:
                transfers.setdefault(plan.move_to, []).append(key)
                removed.append(key)
            elif plan.delete:
                if trash is not None and trash != folder:
                    targets[trash.uri] = trash
                    transfers.setdefault(trash.uri, []).append(key)
                removed.append(key)

        for uri, keys in transfers.items():
            self.store.transfer(folder, keys, targets[uri], move=False)
        if removed:
            self.store.remove(folder, removed)
