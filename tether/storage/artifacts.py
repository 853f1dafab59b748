"""Markdown artifacts for sessions whose content is stored locally.

An artifact is YAML frontmatter (the session's pointer fields) followed by
one block per message::

    ---
    session_id: claude-1234
    title: 'Trip: planning'
    ...
    ---

    ### Human | 2024-05-01T10:00:00Z

    Where should we go?

    ### Assistant | 2024-05-01T10:00:05Z | estimated

    Somewhere warm.

    _[2 attachment(s)]_

Message lines that would read as structure (a header, an attachment
marker, or a leading backslash) are written with a backslash prefix, so
any text survives a render/parse round trip. Only role, text, timestamp and
attachment count are stored; streamed thinking and tool calls are not.
"""

import re

import yaml

from tether.models import Message, Session
from tether.utils.timestamps import parse_iso, to_iso

_FENCE = "---"
_HEADER_RE = re.compile(r"^### (Human|Assistant)(?: \| (\S+))?( \| estimated)?$")
_MARKER_RE = re.compile(r"^_\[(\d+) attachment\(s\)\]_$")
_ESCAPE_PREFIXES = ("\\", "### ", "_[")


class ArtifactFormatError(ValueError):
    """Raised when text is not a well-formed session artifact."""


def _escape(line: str) -> str:
    return "\\" + line if line.startswith(_ESCAPE_PREFIXES) else line


def _unescape(line: str) -> str:
    return line[1:] if line.startswith("\\") else line


def _header(message: Message) -> str:
    parts = ["### Human" if message.role == "human" else "### Assistant"]
    if message.timestamp is not None:
        parts.append(to_iso(message.timestamp))
        if message.timestamp_estimated:
            parts.append("estimated")
    return " | ".join(parts)


class _FrontmatterDumper(yaml.SafeDumper):
    """Keeps every value on one line so a bare fence can never appear inside."""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    style = "\"" if "\n" in value else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_FrontmatterDumper.add_representer(str, _represent_str)


def render_frontmatter(meta: dict) -> str:
    dumped = yaml.dump(
        meta, Dumper=_FrontmatterDumper, sort_keys=False, allow_unicode=True, width=2**31
    )
    return f"{_FENCE}\n{dumped}{_FENCE}\n"


def render_artifact(session: Session, messages: list[Message]) -> str:
    """Render a session and its messages as a complete artifact."""
    lines: list[str] = []
    for message in messages:
        lines.append(_header(message))
        lines.append("")
        lines.extend(_escape(line) for line in message.text.split("\n"))
        lines.append("")
        if message.attachment_count:
            lines.append(f"_[{message.attachment_count} attachment(s)]_")
            lines.append("")

    frontmatter = render_frontmatter(session.model_dump(mode="json"))
    return frontmatter + "\n" + "\n".join(lines)


def split_frontmatter(text: str) -> tuple[dict, str]:
    """Split an artifact into its frontmatter mapping and body."""
    if not text.startswith(_FENCE + "\n"):
        raise ArtifactFormatError("Missing frontmatter")
    end = text.find(f"\n{_FENCE}\n", len(_FENCE))
    if end == -1:
        raise ArtifactFormatError("Unterminated frontmatter")

    try:
        meta = yaml.safe_load(text[len(_FENCE) + 1:end + 1]) or {}
    except yaml.YAMLError as e:
        raise ArtifactFormatError(f"Invalid frontmatter: {e}") from e
    if not isinstance(meta, dict):
        raise ArtifactFormatError("Frontmatter is not a mapping")

    body = text[end + len(_FENCE) + 2:]
    if body.startswith("\n"):
        body = body[1:]
    return meta, body


def _message_from_block(header: re.Match, block: list[str]) -> Message:
    # block: "", text lines..., "", [marker, ""]
    lines = block[1:] if block and block[0] == "" else list(block)
    attachment_count = 0
    if len(lines) >= 3 and lines[-1] == "" and lines[-3] == "":
        marker = _MARKER_RE.match(lines[-2])
        if marker:
            attachment_count = int(marker.group(1))
            lines = lines[:-2]
    if lines and lines[-1] == "":
        lines = lines[:-1]

    timestamp = parse_iso(header.group(2))
    return Message(
        role="human" if header.group(1) == "Human" else "assistant",
        text="\n".join(_unescape(line) for line in lines),
        timestamp=timestamp,
        timestamp_estimated=timestamp is not None and header.group(3) is not None,
        attachment_count=attachment_count,
    )


def parse_messages(body: str) -> list[Message]:
    messages: list[Message] = []
    header: re.Match | None = None
    block: list[str] = []

    for line in body.split("\n"):
        match = _HEADER_RE.match(line)
        if match:
            if header is not None:
                messages.append(_message_from_block(header, block))
            header, block = match, []
        elif header is not None:
            block.append(line)

    if header is not None:
        messages.append(_message_from_block(header, block))
    return messages


def parse_artifact(text: str) -> tuple[Session, list[Message]]:
    """Inverse of render_artifact."""
    meta, body = split_frontmatter(text)
    try:
        session = Session.model_validate(meta)
    except ValueError as e:
        raise ArtifactFormatError(f"Invalid session metadata: {e}") from e
    return session, parse_messages(body)
