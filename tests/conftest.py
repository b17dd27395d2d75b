"""
Shared fixtures: a small Thunderbird profile built in tmp_path.

Accounts:
- account1: POP3 alice@pop.example.com, identity id1, folders
  Inbox (3 messages), Drafts (1), Trash, Projects, Projects/Alpha (1)
- account2: Local Folders with an empty Inbox and Archive
"""

import mailbox
import sqlite3
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from email.utils import format_datetime

import pytest

from src.thunderbird_mcp.config import ServerConfig
from src.thunderbird_mcp.mail_store import MailStore
from src.thunderbird_mcp.profile import Profile

POP_ROOT = "mailbox://alice@pop.example.com"
LOCAL_ROOT = "mailbox://nobody@Local%20Folders"
INBOX = f"{POP_ROOT}/Inbox"
DRAFTS = f"{POP_ROOT}/Drafts"
TRASH = f"{POP_ROOT}/Trash"
PROJECTS = f"{POP_ROOT}/Projects"
ALPHA = f"{POP_ROOT}/Projects/Alpha"

INVOICE_ID = "invoice-1@example.com"
CAFE_ID = "cafe-2@example.com"
NEWSLETTER_ID = "news-3@example.com"
DRAFT_ID = "draft-1@example.com"
ALPHA_ID = "alpha-1@example.com"

INVOICE_BODY = "Please find the invoice attached."
PDF_BYTES = b"%PDF-1.4 fake invoice"

PREFS = """\
// Mozilla User Preferences
user_pref("mail.accountmanager.accounts", "account1,account2");
user_pref("mail.accountmanager.defaultaccount", "account1");
user_pref("mail.account.account1.server", "server1");
user_pref("mail.account.account1.identities", "id1");
user_pref("mail.account.account2.server", "server2");
user_pref("mail.server.server1.type", "pop3");
user_pref("mail.server.server1.hostname", "pop.example.com");
user_pref("mail.server.server1.userName", "alice");
user_pref("mail.server.server1.directory-rel", "[ProfD]Mail/pop.example.com");
user_pref("mail.server.server2.type", "none");
user_pref("mail.server.server2.hostname", "Local Folders");
user_pref("mail.server.server2.userName", "nobody");
user_pref("mail.server.server2.name", "Local Folders");
user_pref("mail.server.server2.directory-rel", "[ProfD]Mail/Local Folders");
user_pref("mail.identity.id1.useremail", "alice@example.com");
user_pref("mail.identity.id1.fullName", "Alice Example");
user_pref("calendar.registry.cal1.type", "storage");
user_pref("calendar.registry.cal1.name", "Home");
user_pref("calendar.registry.cal2.type", "ics");
user_pref("calendar.registry.cal2.name", "Holidays");
user_pref("calendar.registry.cal2.readOnly", true);
user_pref("ldap_2.servers.pab.filename", "abook.sqlite");
user_pref("ldap_2.servers.pab.description", "Personal Address Book");
"""

FILTER_RULES = f"""\
version="9"
logging="no"
name="Invoices"
enabled="yes"
type="17"
action="Move to folder"
actionValue="{PROJECTS}"
condition="AND (subject,contains,invoice)"
name="Newsletters"
enabled="no"
type="1"
action="Mark read"
condition="OR (from,contains,news)"
"""


def make_message(
    message_id,
    subject,
    sender,
    to,
    date=None,
    body="",
    status="0000",
    cc=None,
    html=False,
    attachment=None,
):
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    if cc:
        msg["Cc"] = cc
    msg["Subject"] = subject
    if date is not None:
        msg["Date"] = format_datetime(date)
    msg["Message-ID"] = f"<{message_id}>"
    msg["X-Mozilla-Status"] = status
    msg["X-Mozilla-Status2"] = "00000000"
    if html:
        msg.set_content(body, subtype="html")
    else:
        msg.set_content(body)
    if attachment is not None:
        filename, data = attachment
        msg.add_attachment(data, maintype="application", subtype="pdf", filename=filename)
    return msg


def write_mbox(path, messages):
    path.parent.mkdir(parents=True, exist_ok=True)
    box = mailbox.mbox(str(path), create=True)
    try:
        for msg in messages:
            box.add(mailbox.mboxMessage(msg.as_bytes()))
        box.flush()
    finally:
        box.close()


def _write_address_book(path, cards):
    conn = sqlite3.connect(str(path))
    try:
        conn.execute("CREATE TABLE properties (card TEXT, name TEXT, value TEXT)")
        conn.execute("CREATE TABLE lists (uid TEXT, name TEXT)")
        conn.execute("INSERT INTO lists VALUES ('list-1', 'Team')")
        for card, props in cards.items():
            for name, value in props.items():
                conn.execute("INSERT INTO properties VALUES (?, ?, ?)", (card, name, value))
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def profile_dir(tmp_path):
    """Profile directory with prefs, mail folders, address books and filters."""
    root = tmp_path / "profile"
    root.mkdir()
    (root / "prefs.js").write_text(PREFS, encoding="utf-8")

    now = datetime.now(timezone.utc)
    pop = root / "Mail" / "pop.example.com"
    write_mbox(
        pop / "Inbox",
        [
            make_message(
                INVOICE_ID,
                "Quarterly invoice",
                "Bob Builder <bob@example.com>",
                "Alice Example <alice@example.com>",
                date=now - timedelta(days=1),
                body=INVOICE_BODY,
                cc="Carol Singer <carol@example.com>, alice@example.com",
                attachment=("invoice.pdf", PDF_BYTES),
            ),
            make_message(
                CAFE_ID,
                "Café meeting",
                "Dave <dave@example.org>",
                "alice@example.com",
                date=datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc),
                body="<p>Hello <b>there</b></p>",
                status="0001",
                html=True,
            ),
            make_message(
                NEWSLETTER_ID,
                "Old newsletter",
                "news@example.net",
                "alice@example.com",
                date=datetime(2020, 1, 1, 9, 0, tzinfo=timezone.utc),
                body="Archive issue",
                status="0005",
            ),
        ],
    )
    write_mbox(
        pop / "Drafts",
        [make_message(DRAFT_ID, "Unfinished", "alice@example.com", "bob@example.com", body="tbd")],
    )
    write_mbox(pop / "Trash", [])
    write_mbox(pop / "Projects", [])
    write_mbox(
        pop / "Projects.sbd" / "Alpha",
        [
            make_message(
                ALPHA_ID,
                "Alpha kickoff",
                "erin@example.com",
                "alice@example.com",
                date=datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc),
                body="Kickoff notes",
            )
        ],
    )
    (pop / "msgFilterRules.dat").write_text(FILTER_RULES, encoding="utf-8")

    local = root / "Mail" / "Local Folders"
    write_mbox(local / "Inbox", [])
    write_mbox(local / "Archive", [])

    _write_address_book(
        root / "abook.sqlite",
        {
            "card-bob": {
                "PrimaryEmail": "bob@example.com",
                "DisplayName": "Bob Builder",
                "FirstName": "Bob",
                "LastName": "Builder",
            },
            "card-carol": {
                "PrimaryEmail": "carol@example.com",
                "DisplayName": "Carol Singer",
                "FirstName": "Carol",
                "LastName": "Singer",
            },
        },
    )
    _write_address_book(
        root / "history.sqlite",
        {"card-zed": {"PrimaryEmail": "zed@example.net", "DisplayName": "Zed"}},
    )
    return root


@pytest.fixture
def profile(profile_dir):
    return Profile(profile_dir)


@pytest.fixture
def store(profile, tmp_path):
    return MailStore(profile, tmp_path / "attachments")


@pytest.fixture
def config(profile_dir, tmp_path):
    return ServerConfig(
        profile_path=profile_dir,
        host="127.0.0.1",
        port=0,
        attachment_dir=tmp_path / "attachments",
        open_command=None,
    )
