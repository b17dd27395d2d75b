"""
Draft Composition
=================

sendMail, replyToMessage and forwardMessage build an HTML message and store
it in the sender identity's Drafts folder. The user reviews and sends it
from Thunderbird.

CONTRACT CLAUSES:
- POST-COMPOSE-01: A draft is stored; nothing is sent (INV-COMPOSE-01)
- POST-COMPOSE-02: Body is an HTML document with a UTF-8 meta charset
- POST-COMPOSE-03: Replies carry References and In-Reply-To
- POST-COMPOSE-04: "Re: " / "Fwd: " added exactly once
- POST-COMPOSE-05: Reply-all cc excludes own address and duplicates
- POST-COMPOSE-06: Forwards carry the original attachments
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, format_datetime, getaddresses, make_msgid
from pathlib import Path

from contracts import Account, AccountNotFoundError, Identity, MessageFlag
from src.thunderbird_mcp import mime
from src.thunderbird_mcp.mail_store import Folder, MailStore, coerce_bool
from src.thunderbird_mcp.profile import Profile

logger = logging.getLogger("thunderbird-mcp.compose")

DRAFT_INFO = (
    "internal/draft; vcard=0; receipt=0; DSN=0; uuencode=0; "
    "attachmentreminder=0; deliveryformat=4"
)


@dataclass
class AttachmentResult:
    added: int = 0
    failed: list[str] = field(default_factory=list)


def local_date_string(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.astimezone().strftime("%m/%d/%Y, %I:%M:%S %p")


def prefixed_subject(subject: str, prefix: str) -> str:
    """Add "Re: " or "Fwd: " unless the subject already starts with it."""
    if subject.lower().startswith(prefix.lower()):
        return subject
    return f"{prefix} {subject}"


def body_document(body: str | None, is_html: bool) -> str:
    formatted = mime.format_body_html(body, is_html)
    if is_html and "<html" in formatted:
        return formatted
    return mime.wrap_html_document(formatted)


def reply_all_cc(recipients: str, cc_list: str, own_email: str) -> str:
    """Original To and Cc minus our own address, deduplicated by address."""
    own = own_email.lower()
    seen: set[str] = set()
    kept = []
    for name, address in getaddresses([recipients or "", cc_list or ""]):
        lowered = address.lower()
        if not lowered or lowered == own or lowered in seen:
            continue
        seen.add(lowered)
        kept.append(formataddr((name, address)))
    return ", ".join(kept)


class Composer:
    """Builds drafts and stores them through the mail store."""

    def __init__(self, profile: Profile, store: MailStore) -> None:
        self.profile = profile
        self.store = store

    # -- identity and attachments --------------------------------------------

    def _identity_for(
        self, from_: str | None, folder: Folder | None = None
    ) -> tuple[Account, Identity | None, str]:
        """(account, identity, warning) for a "from" email or identity id."""
        found = self.profile.find_identity(from_)
        if found is not None:
            return found[0], found[1], ""

        account = self.store.account_for_folder(folder) if folder else self.profile.default_account()
        if account is None:
            raise AccountNotFoundError("No mail account configured")
        identity = account.default_identity
        if identity is None:
            default = self.profile.default_account()
            if default is not None:
                account, identity = default, default.default_identity
        warning = f"unknown identity: {from_}, using default" if from_ else ""
        return account, identity, warning

    @staticmethod
    def _attach_files(msg: EmailMessage, attachments) -> AttachmentResult:
        result = AttachmentResult()
        if not isinstance(attachments, list):
            return result
        for file_path in attachments:
            path = Path(str(file_path))
            try:
                data = path.read_bytes()
            except OSError:
                result.failed.append(str(file_path))
                continue
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            maintype, subtype = content_type.split("/", 1)
            msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=path.name)
            result.added += 1
        return result

    def _new_draft(
        self,
        identity: Identity | None,
        to: str | None,
        subject: str,
        html: str,
        cc: str | None,
        bcc: str | None,
    ) -> EmailMessage:
        msg = EmailMessage()
        if identity is not None:
            msg["From"] = formataddr((identity.full_name, identity.email))
        msg["To"] = to or ""
        if cc:
            msg["Cc"] = cc
        if bcc:
            msg["Bcc"] = bcc
        msg["Subject"] = subject
        msg["Date"] = format_datetime(datetime.now().astimezone())
        domain = identity.email.rpartition("@")[2] if identity and "@" in identity.email else None
        msg["Message-ID"] = make_msgid(domain=domain)
        msg["X-Mozilla-Draft-Info"] = DRAFT_INFO
        msg.set_content(html, subtype="html", charset="utf-8")
        return msg

    def _save(self, account: Account, identity: Identity | None, msg: EmailMessage) -> Folder:
        drafts = self.store.drafts_folder(account, identity.draft_folder if identity else None)
        self.store.append(drafts, msg, status=MessageFlag.READ)
        return drafts

    @staticmethod
    def _message_text(base: str, warning: str, attached: AttachmentResult) -> str:
        text = base
        if warning:
            text += f" ({warning})"
        if attached.failed:
            text += f" (failed to attach: {', '.join(attached.failed)})"
        return text

    def _original(self, message_id: str, folder_path: str):
        folder, stored = self.store.find_message(message_id, folder_path)
        return folder, stored, self.store.load_message(folder, stored.key)

    # -- tools ---------------------------------------------------------------

    def send_mail(
        self,
        to,
        subject,
        body,
        cc=None,
        bcc=None,
        is_html=False,
        from_=None,
        attachments=None,
    ) -> dict:
        """
        Store a new message as a draft for review.

        INV-COMPOSE-01: Nothing is transmitted.
        """
        is_html = coerce_bool(is_html)
        account, identity, warning = self._identity_for(from_)
        msg = self._new_draft(identity, to, subject or "", body_document(body, is_html), cc, bcc)
        attached = self._attach_files(msg, attachments)
        drafts = self._save(account, identity, msg)

        logger.info("Saved new draft to %s", drafts.uri)
        return {
            "success": True,
            "message": self._message_text(f"Draft saved to {drafts.pretty_name}", warning, attached),
            "folderPath": drafts.uri,
        }

    def reply_to_message(
        self,
        message_id,
        folder_path,
        body,
        reply_all=False,
        is_html=False,
        to=None,
        cc=None,
        bcc=None,
        from_=None,
        attachments=None,
    ) -> dict:
        """Draft a reply quoting the original, threaded under it."""
        is_html = coerce_bool(is_html)
        folder, stored, original = self._original(message_id, folder_path)
        account, identity, warning = self._identity_for(from_, folder)

        raw_author = str(original.get("From", "") or "")
        reply_to = to or raw_author
        reply_cc = cc or None
        if coerce_bool(reply_all) and not cc:
            own_account = self.store.account_for_folder(folder)
            own = own_account.default_identity.email if own_account.default_identity else ""
            reply_cc = reply_all_cc(
                str(original.get("To", "") or ""), str(original.get("Cc", "") or ""), own
            ) or None

        quoted = "<br>".join(
            f"&gt; {mime.escape_html(line)}" for line in mime.plaintext_body(original).split("\n")
        )
        quote_block = (
            f"<br><br>On {local_date_string(stored.date)}, "
            f"{mime.escape_html(stored.author)} wrote:<br>{quoted}"
        )

        msg = self._new_draft(
            identity,
            reply_to,
            prefixed_subject(stored.subject, "Re:"),
            mime.wrap_html_document(mime.format_body_html(body, is_html) + quote_block),
            reply_cc,
            bcc,
        )
        msg["References"] = f"<{stored.message_id}>"
        msg["In-Reply-To"] = f"<{stored.message_id}>"
        attached = self._attach_files(msg, attachments)
        drafts = self._save(account, identity, msg)

        logger.info("Saved reply draft to %s", drafts.uri)
        return {
            "success": True,
            "message": self._message_text(
                f"Reply draft saved to {drafts.pretty_name}", warning, attached
            ),
            "folderPath": drafts.uri,
        }

    def forward_message(
        self,
        message_id,
        folder_path,
        to,
        body=None,
        is_html=False,
        cc=None,
        bcc=None,
        from_=None,
        attachments=None,
    ) -> dict:
        """Draft a forward with the original headers, body and attachments."""
        is_html = coerce_bool(is_html)
        folder, stored, original = self._original(message_id, folder_path)
        account, identity, warning = self._identity_for(from_, folder)

        forward_block = (
            "-------- Forwarded Message --------<br>"
            f"Subject: {mime.escape_html(stored.subject)}<br>"
            f"Date: {local_date_string(stored.date)}<br>"
            f"From: {mime.escape_html(stored.author)}<br>"
            f"To: {mime.escape_html(stored.recipients)}<br><br>"
            + mime.escape_html(mime.plaintext_body(original)).replace("\n", "<br>")
        )
        intro = mime.format_body_html(body, is_html) + "<br><br>" if body else ""

        msg = self._new_draft(
            identity,
            to,
            prefixed_subject(stored.subject, "Fwd:"),
            mime.wrap_html_document(intro + forward_block),
            cc,
            bcc,
        )
        carried = self._carry_attachments(msg, original)
        attached = self._attach_files(msg, attachments)
        drafts = self._save(account, identity, msg)

        logger.info("Saved forward draft to %s", drafts.uri)
        return {
            "success": True,
            "message": self._message_text(
                f"Forward draft saved to {drafts.pretty_name} with "
                f"{carried + attached.added} attachment(s)",
                warning,
                attached,
            ),
            "folderPath": drafts.uri,
        }

    @staticmethod
    def _carry_attachments(msg: EmailMessage, original) -> int:
        count = 0
        for part in mime.attachment_parts(original):
            payload = part.get_payload(decode=True)
            if payload is None:
                continue
            maintype, subtype = part.get_content_type().split("/", 1)
            filename = mime.decode_header_value(part.get_filename() or "") or "attachment"
            msg.add_attachment(payload, maintype=maintype, subtype=subtype, filename=filename)
            count += 1
        return count
