"""
Draft Composition Implementation Tests
======================================

sendMail, replyToMessage and forwardMessage store drafts in the sender's
Drafts folder; nothing is transmitted.
CL12-E TRACEABILITY: Every test cites specific contract clause IDs.
"""

import smtplib
from unittest.mock import patch

import pytest

from contracts import MessageNotFoundError
from src.thunderbird_mcp import mime
from src.thunderbird_mcp.compose import Composer, prefixed_subject, reply_all_cc

from conftest import DRAFT_ID, DRAFTS, INBOX, INVOICE_ID, PDF_BYTES


@pytest.fixture
def composer(profile, store):
    return Composer(profile, store)


def _new_drafts(store):
    """Drafts other than the one the fixture profile starts with."""
    drafts = store.find_folder(DRAFTS)
    return [
        (stored, msg)
        for stored, msg in store.read_messages(drafts)
        if stored.message_id != DRAFT_ID
    ]


def _html(msg):
    found = mime.find_body(msg)
    assert found is not None
    return found[0]


class TestComposeContract:
    """Tests for draft-producing tools."""

    def test_send_mail_stores_draft(self, composer, store):
        """
        Contract: ComposeContract
        Enforces: POST-COMPOSE-01, POST-COMPOSE-02, INV-COMPOSE-01
        """
        with patch.object(smtplib, "SMTP") as smtp, patch.object(smtplib, "SMTP_SSL") as smtp_ssl:
            result = composer.send_mail(
                "bob@example.com",
                "Lunch",
                "Line one\nLine <two>",
                cc="carol@example.com",
            )

        assert result == {"success": True, "message": "Draft saved to Drafts", "folderPath": DRAFTS}
        smtp.assert_not_called()
        smtp_ssl.assert_not_called()

        [(stored, msg)] = _new_drafts(store)
        assert stored.subject == "Lunch"
        assert stored.recipients == "bob@example.com"
        assert stored.cc_list == "carol@example.com"
        assert stored.read
        assert msg["From"] == "Alice Example <alice@example.com>"
        assert msg["X-Mozilla-Draft-Info"].startswith("internal/draft")

        html = _html(msg)
        assert '<meta charset="UTF-8">' in html
        assert "Line one<br>Line &lt;two&gt;" in html

    def test_send_mail_html_body(self, composer, store):
        """
        Contract: ComposeContract
        Enforces: POST-COMPOSE-02
        """
        composer.send_mail("bob@example.com", "Hi", "<p>Grüße</p>\n<p>Bob</p>", is_html=True)

        [(_, msg)] = _new_drafts(store)
        assert "<p>Gr&#252;&#223;e</p><p>Bob</p>" in _html(msg)

    def test_send_mail_unknown_identity_and_missing_file(self, composer, store, tmp_path):
        """
        Contract: ComposeContract
        Enforces: ERRORS unknown identity warning, missing attachment reported
        """
        notes = tmp_path / "notes.txt"
        notes.write_text("agenda", encoding="utf-8")
        missing = tmp_path / "missing.pdf"

        result = composer.send_mail(
            "bob@example.com",
            "Files",
            "See attached",
            from_="nobody@example.com",
            attachments=[str(notes), str(missing)],
        )

        assert result["success"] is True
        assert "unknown identity: nobody@example.com, using default" in result["message"]
        assert f"failed to attach: {missing}" in result["message"]

        [(_, msg)] = _new_drafts(store)
        assert [info["name"] for info in map(mime.attachment_info, mime.attachment_parts(msg))] == [
            "notes.txt"
        ]

    def test_reply_threading(self, composer, store):
        """
        Contract: ComposeContract
        Enforces: POST-COMPOSE-03, POST-COMPOSE-04
        """
        result = composer.reply_to_message(INVOICE_ID, INBOX, "Thanks, paid.")

        assert result["message"] == "Reply draft saved to Drafts"
        [(stored, msg)] = _new_drafts(store)
        assert stored.subject == "Re: Quarterly invoice"
        assert stored.recipients == "Bob Builder <bob@example.com>"
        assert msg["In-Reply-To"] == f"<{INVOICE_ID}>"
        assert msg["References"] == f"<{INVOICE_ID}>"

        html = _html(msg)
        assert html.index("Thanks, paid.") < html.index("wrote:")
        assert "&gt; Please find the invoice attached." in html

        assert prefixed_subject("Re: Quarterly invoice", "Re:") == "Re: Quarterly invoice"
        assert prefixed_subject("RE: shouting", "Re:") == "RE: shouting"
        assert prefixed_subject("Plans", "Fwd:") == "Fwd: Plans"

    def test_reply_all_recipients(self, composer, store):
        """
        Contract: ComposeContract
        Enforces: POST-COMPOSE-05
        """
        composer.reply_to_message(INVOICE_ID, INBOX, "Adding everyone", reply_all=True)

        [(stored, _)] = _new_drafts(store)
        assert stored.cc_list == "Carol Singer <carol@example.com>"

        assert reply_all_cc(
            "Alice <ALICE@example.com>, bob@example.com",
            "bob@example.com, Carol <carol@example.com>",
            "alice@example.com",
        ) == "bob@example.com, Carol <carol@example.com>"

    def test_forward_keeps_attachments(self, composer, store):
        """
        Contract: ComposeContract
        Enforces: POST-COMPOSE-06
        """
        result = composer.forward_message(INVOICE_ID, INBOX, "dave@example.org", body="FYI")

        assert result["message"] == "Forward draft saved to Drafts with 1 attachment(s)"
        [(stored, msg)] = _new_drafts(store)
        assert stored.subject == "Fwd: Quarterly invoice"
        assert stored.recipients == "dave@example.org"

        parts = mime.attachment_parts(msg)
        assert [part.get_filename() for part in parts] == ["invoice.pdf"]
        assert parts[0].get_payload(decode=True) == PDF_BYTES

        html = _html(msg)
        assert "-------- Forwarded Message --------" in html
        assert html.index("FYI") < html.index("Forwarded Message")

    def test_reply_unknown_message(self, composer):
        """
        Contract: ComposeContract
        Enforces: ERRORS MESSAGE_NOT_FOUND
        """
        with pytest.raises(MessageNotFoundError):
            composer.reply_to_message("nope@example.com", INBOX, "hello")
