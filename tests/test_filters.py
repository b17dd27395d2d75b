"""
Message Filter Implementation Tests
===================================

Filter rules read from and written back to msgFilterRules.dat, and
applyFilters run over real mbox folders.
CL12-E TRACEABILITY: Every test cites specific contract clause IDs.
"""

import pytest

from contracts import FilterTerm, InvalidArgumentError
from src.thunderbird_mcp.filters import (
    ATTRIB_MAP,
    OP_MAP,
    FilterService,
    format_condition,
    parse_condition,
)

from conftest import CAFE_ID, FILTER_RULES, INBOX, INVOICE_ID, NEWSLETTER_ID, PROJECTS


@pytest.fixture
def filters(profile, store):
    return FilterService(profile, store)


@pytest.fixture
def rules_file(profile_dir):
    return profile_dir / "Mail" / "pop.example.com" / "msgFilterRules.dat"


def _names(filters):
    return [f["name"] for f in filters.list_filters("account1")[0]["filters"]]


def _folder_ids(store, uri):
    return [stored.message_id for stored in store.read_summaries(store.find_folder(uri))]


class TestFiltersContract:
    """Tests for the filter tools."""

    def test_list_filters(self, filters):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-01, POST-FILTERS-02
        """
        [account] = filters.list_filters("account1")

        assert account["accountId"] == "account1"
        assert account["accountName"] == "alice on pop.example.com"
        assert account["filterCount"] == 2
        assert account["loggingEnabled"] is False
        assert account["filters"][0] == {
            "index": 0,
            "name": "Invoices",
            "enabled": True,
            "type": 17,
            "temporary": False,
            "terms": [
                {"attrib": "subject", "op": "contains", "booleanAnd": True, "value": "invoice"}
            ],
            "actions": [{"type": "moveToFolder", "value": PROJECTS}],
        }
        assert account["filters"][1]["enabled"] is False
        assert account["filters"][1]["terms"][0]["booleanAnd"] is False

        every = filters.list_filters()
        assert [a["accountId"] for a in every] == ["account1", "account2"]
        assert every[1]["filterCount"] == 0

    def test_create_filter_persists(self, filters, rules_file):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-03
        """
        result = filters.create_filter(
            "account1",
            "Boss",
            [{"attrib": "from", "op": "contains", "value": "boss@example.com"}],
            [{"type": "markFlagged"}, {"type": "addTag", "value": "$label1"}],
            insert_at_index=0,
        )

        assert result == {"success": True, "name": "Boss", "index": 0, "filterCount": 3}
        text = rules_file.read_text(encoding="utf-8")
        assert 'name="Boss"' in text
        assert 'action="Mark flagged"' in text
        assert 'action="AddTag"' in text
        assert 'condition="AND (from,contains,boss@example.com)"' in text
        assert _names(filters) == ["Boss", "Invoices", "Newsletters"]
        assert filters.list_filters("account1")[0]["filters"][0]["type"] == 17

    def test_create_filter_unknown_attribute(self, filters, rules_file):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-04
        """
        before = rules_file.read_text(encoding="utf-8")

        with pytest.raises(InvalidArgumentError, match="Unknown attribute: bogus"):
            filters.create_filter(
                "account1",
                "Broken",
                [{"attrib": "bogus", "op": "contains", "value": "x"}],
                [{"type": "markRead"}],
            )
        with pytest.raises(InvalidArgumentError, match="conditions must be a non-empty array"):
            filters.create_filter("account1", "Empty", [], [{"type": "markRead"}])

        assert rules_file.read_text(encoding="utf-8") == before

    def test_update_and_delete_filter(self, filters):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-03
        """
        updated = filters.update_filter("account1", 1, enabled=True, name="News")

        assert updated["changes"] == ["name", "enabled"]
        assert updated["filter"]["name"] == "News"
        assert filters.list_filters("account1")[0]["filters"][1]["enabled"] is True

        deleted = filters.delete_filter("account1", "0")
        assert deleted == {"success": True, "deleted": "Invoices", "remainingCount": 1}
        assert _names(filters) == ["News"]

        with pytest.raises(InvalidArgumentError, match="Invalid filter index: 5"):
            filters.delete_filter("account1", 5)

    def test_reorder_filters(self, filters):
        """
        Contract: FiltersContract
        Enforces: INV-FILTERS-01
        """
        result = filters.reorder_filters("account1", 0, 1)

        assert result == {"success": True, "name": "Invoices", "fromIndex": 0, "toIndex": 1}
        assert _names(filters) == ["Newsletters", "Invoices"]

        with pytest.raises(InvalidArgumentError, match="Invalid target index: 2"):
            filters.reorder_filters("account1", 0, 2)

    def test_apply_filters_moves_matches(self, filters, store):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-05
        """
        result = filters.apply_filters("account1", INBOX)

        assert result == {
            "success": True,
            "message": "Filters applied: 1 message(s) matched",
            "folder": INBOX,
            "enabledFilters": 1,
            "matchedMessages": 1,
        }
        assert _folder_ids(store, INBOX) == [CAFE_ID, NEWSLETTER_ID]
        assert _folder_ids(store, PROJECTS) == [INVOICE_ID]

    def test_apply_filters_state_actions(self, filters, store):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-05
        """
        filters.delete_filter("account1", 0)
        filters.create_filter(
            "account1",
            "Flag Dave",
            [{"attrib": "from", "op": "contains", "value": "dave"}],
            [{"type": "markFlagged"}, {"type": "addTag", "value": "$label1"}, {"type": "reply"}],
        )

        result = filters.apply_filters("account1", INBOX)

        assert result["matchedMessages"] == 1
        assert result["unsupportedActions"] == ["reply"]
        _, stored = store.find_message(CAFE_ID, INBOX)
        assert stored.flagged
        assert stored.keywords == ["$label1"]
        assert _folder_ids(store, INBOX) == [INVOICE_ID, CAFE_ID, NEWSLETTER_ID]

    def test_condition_round_trip(self):
        """Quoted header names and values with parentheses survive a rewrite."""
        terms = [
            FilterTerm(ATTRIB_MAP["subject"], OP_MAP["contains"], "report (draft)"),
            FilterTerm(
                ATTRIB_MAP["otherHeader"], OP_MAP["is"], "yes", boolean_and=False, header="X-Spam"
            ),
        ]

        line = format_condition(terms)

        assert line == 'AND (subject,contains,"report (draft)") OR ("X-Spam",is,yes)'
        assert parse_condition(line) == terms
        assert parse_condition("ALL") == []

    def test_unreadable_condition_kept_and_skipped(self, filters, store, rules_file):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-02, POST-FILTERS-03, POST-FILTERS-05
        """
        rules_file.write_text(
            FILTER_RULES
            + 'name="Drop odd"\nenabled="yes"\ntype="17"\naction="Delete"\n'
            'condition="AND (subject,sounds like,x)"\n',
            encoding="utf-8",
        )

        odd = filters.list_filters("account1")[0]["filters"][2]
        assert odd["terms"] == []
        assert odd["unparsedCondition"] == "AND (subject,sounds like,x)"

        result = filters.apply_filters("account1", INBOX)

        assert result["matchedMessages"] == 1
        assert result["skippedFilters"] == ["Drop odd"]
        assert _folder_ids(store, INBOX) == [CAFE_ID, NEWSLETTER_ID]

        filters.create_filter(
            "account1",
            "Boss",
            [{"attrib": "from", "op": "contains", "value": "boss@example.com"}],
            [{"type": "markFlagged"}],
        )
        text = rules_file.read_text(encoding="utf-8")
        assert 'condition="AND (subject,sounds like,x)"' in text
        assert 'condition="ALL"' not in text

    def test_isnt_empty_operator(self, filters, store):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-05
        """
        term = FilterTerm(ATTRIB_MAP["tag"], OP_MAP["isntEmpty"], "")
        assert parse_condition("AND (tag,isn't empty,)") == [term]
        assert format_condition([term]) == "AND (tag,isn't empty,)"

        filters.delete_filter("account1", 0)
        filters.create_filter(
            "account1",
            "Flag tagged",
            [{"attrib": "tag", "op": "isntEmpty", "value": ""}],
            [{"type": "markFlagged"}],
        )
        assert filters.apply_filters("account1", INBOX)["matchedMessages"] == 0

        filters.create_filter(
            "account1",
            "Tag Dave",
            [{"attrib": "from", "op": "contains", "value": "dave"}],
            [{"type": "addTag", "value": "$label1"}],
            insert_at_index=0,
        )
        result = filters.apply_filters("account1", INBOX)

        assert result["matchedMessages"] == 1
        _, cafe = store.find_message(CAFE_ID, INBOX)
        _, invoice = store.find_message(INVOICE_ID, INBOX)
        assert cafe.keywords == ["$label1"]
        assert not invoice.flagged

        assert filters.apply_filters("account1", INBOX)["matchedMessages"] == 1
        _, cafe = store.find_message(CAFE_ID, INBOX)
        assert cafe.flagged

    def test_custom_and_unknown_actions_survive_rewrite(self, filters, rules_file):
        """
        Contract: FiltersContract
        Enforces: POST-FILTERS-02, POST-FILTERS-03
        """
        rules_file.write_text(
            FILTER_RULES
            + 'name="Extension"\nenabled="yes"\ntype="17"\n'
            'action="Custom"\ncustomId="filtaquilla@mesquilla.com#runFile"\n'
            'actionValue="/bin/x"\naction="Fetch body from Pop3Server"\n'
            'condition="AND (subject,contains,meeting)"\n',
            encoding="utf-8",
        )

        updated = filters.update_filter("account1", 2, name="Ext2")

        assert updated["filter"]["actions"] == [
            {"type": "custom", "customId": "filtaquilla@mesquilla.com#runFile", "value": "/bin/x"},
            {"type": "Fetch body from Pop3Server"},
        ]
        text = rules_file.read_text(encoding="utf-8")
        assert (
            'name="Ext2"\nenabled="yes"\ntype="17"\n'
            'action="Custom"\ncustomId="filtaquilla@mesquilla.com#runFile"\n'
            'actionValue="/bin/x"\naction="Fetch body from Pop3Server"\n'
            'condition="AND (subject,contains,meeting)"\n'
        ) in text

        result = filters.apply_filters("account1", INBOX)

        assert result["matchedMessages"] == 2
        assert result["unsupportedActions"] == ["Fetch body from Pop3Server", "custom"]
