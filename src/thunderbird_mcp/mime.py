"""
MIME Helpers
============

Header decoding, body extraction, attachment handling and the text
sanitising that tool results go through before JSON encoding.

INV-READ-01: Nothing here logs message bodies or attachment contents.
"""

from __future__ import annotations

import email.message
import logging
import re
from email.header import decode_header
from html.entities import html5
from pathlib import Path

logger = logging.getLogger("thunderbird-mcp.mime")

MAX_ATTACHMENT_BYTES = 50 * 1024 * 1024
NO_BODY_TEXT = "(Could not extract body text)"

# C0 controls except tab, LF, CR; plus DEL.
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_BLOCK_TAGS = r"p|div|li|tr|h[1-6]|blockquote|pre"
_NAMED_ENTITIES = {
    "nbsp": " ",
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
}
_ENTITY_RE = re.compile(r"&(#[xX][0-9a-fA-F]+|#[0-9]+|[a-zA-Z]+);")


def sanitize_for_json(text: str | None) -> str | None:
    """Drop control characters that JSON consumers choke on."""
    if not text:
        return text
    return _CONTROL_CHARS_RE.sub("", text)


def decode_header_value(value: str | None) -> str:
    """Decode an RFC 2047 encoded header into text."""
    if not value:
        return ""

    decoded_parts = []
    for part, charset in decode_header(str(value)):
        if isinstance(part, bytes):
            try:
                decoded_parts.append(part.decode(charset or "utf-8", errors="replace"))
            except LookupError:
                decoded_parts.append(part.decode("utf-8", errors="replace"))
        else:
            decoded_parts.append(part)
    return "".join(decoded_parts)


def escape_html(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def format_body_html(body: str | None, is_html: bool) -> str:
    """
    Turn a tool-supplied body into HTML for a draft.

    HTML input loses its newlines (the compose editor turns each one into a
    <br>) and has non-ASCII characters entity-encoded. Plain text is escaped
    and its newlines become <br>.
    """
    if is_html:
        text = (body or "").replace("\n", "")
        return "".join(c if ord(c) <= 127 else f"&#{ord(c)};" for c in text)
    return escape_html(body or "").replace("\n", "<br>")


def wrap_html_document(fragment: str) -> str:
    return f'<html><head><meta charset="UTF-8"></head><body>{fragment}</body></html>'


def _decode_entity(match: re.Match) -> str:
    entity = match.group(1)
    try:
        if entity[:2] in ("#x", "#X"):
            codepoint = int(entity[2:], 16)
            return chr(codepoint) if codepoint else match.group(0)
        if entity.startswith("#"):
            codepoint = int(entity[1:])
            return chr(codepoint) if codepoint else match.group(0)
    except (ValueError, OverflowError):
        return match.group(0)
    return _NAMED_ENTITIES.get(entity.lower()) or html5.get(f"{entity};", match.group(0))


def strip_html(markup: str | None) -> str:
    """Reduce an HTML body to readable plain text."""
    if not markup:
        return ""
    text = str(markup)

    text = re.sub(r"<script\b[^>]*>[\s\S]*?</script>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<style\b[^>]*>[\s\S]*?</style>", " ", text, flags=re.IGNORECASE)

    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(rf"</({_BLOCK_TAGS})>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(rf"<({_BLOCK_TAGS})\b[^>]*>", "\n", text, flags=re.IGNORECASE)

    text = re.sub(r"<[^>]+>", " ", text)
    text = _ENTITY_RE.sub(_decode_entity, text)

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    return text.strip()


def decode_payload(part: email.message.Message) -> str:
    """Decode a text part's payload using its declared charset."""
    payload = part.get_payload(decode=True)
    if payload is None:
        return ""

    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def is_attachment(part: email.message.Message) -> bool:
    if part.is_multipart():
        return False
    disposition = str(part.get("Content-Disposition", "")).lower()
    return disposition.startswith("attachment") or part.get_filename() is not None


def find_body(msg: email.message.Message) -> tuple[str, bool] | None:
    """
    First text/plain body part, else the first text/html one.

    Returns (text, is_html) or None when the message has no text body.
    """
    html_fallback = None
    for part in msg.walk():
        if part.is_multipart() or is_attachment(part):
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain":
            text = decode_payload(part)
            if text:
                return text, False
        elif content_type == "text/html" and html_fallback is None:
            text = decode_payload(part)
            if text:
                html_fallback = (text, True)
    return html_fallback


def plaintext_body(msg: email.message.Message) -> str:
    """Body as plain text; HTML-only messages are stripped."""
    found = find_body(msg)
    if found is None:
        return ""
    text, is_html_body = found
    return strip_html(text) if is_html_body else text


def attachment_parts(msg: email.message.Message) -> list[email.message.Message]:
    return [part for part in msg.walk() if is_attachment(part)]


def attachment_info(part: email.message.Message) -> dict:
    """{name, contentType, size} for one attachment part."""
    payload = part.get_payload(decode=True)
    return {
        "name": sanitize_for_json(decode_header_value(part.get_filename() or "")),
        "contentType": sanitize_for_json(part.get_content_type()),
        "size": len(payload) if payload is not None else None,
    }


def sanitize_path_segment(value: str) -> str:
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", str(value or ""))
    return sanitized or "message"


def sanitize_filename(value: str) -> str:
    name = str(value or "").strip() or "attachment"
    name = re.sub(r"[^a-zA-Z0-9._-]", "_", name)
    name = name.strip("_")
    return name or "attachment"


def _unique_path(directory: Path, name: str) -> Path:
    candidate = directory / name
    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


def save_attachments(
    parts: list[email.message.Message],
    infos: list[dict],
    root: Path,
    message_id: str,
) -> None:
    """
    Write attachments under root/<sanitized message id>/.

    Each info dict gains either filePath or error; one failure does not stop
    the others.
    """
    directory = Path(root) / sanitize_path_segment(message_id)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        for info in infos:
            info["error"] = f"Failed to create attachment directory: {e}"
        return

    for index, (part, info) in enumerate(zip(parts, infos)):
        payload = part.get_payload(decode=True)
        if payload is None:
            info["error"] = "Attachment has no content"
            continue
        if len(payload) > MAX_ATTACHMENT_BYTES:
            info["error"] = (
                f"Attachment too large ({len(payload)} bytes, limit {MAX_ATTACHMENT_BYTES})"
            )
            continue

        safe_name = sanitize_filename(info.get("name", ""))
        if safe_name in (".", ".."):
            safe_name = f"attachment_{index}"

        target = _unique_path(directory, safe_name)
        try:
            target.write_bytes(payload)
        except OSError as e:
            info["error"] = f"Write failed: {e}"
            continue
        info["filePath"] = str(target)

    logger.info("Saved attachments for one message into %s", directory)
