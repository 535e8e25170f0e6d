"""Attachment signal detection over message parts.

Attachments reach the server in three shapes:
- ``image`` parts (data URLs)
- ``file`` parts (PDFs and other provider-readable documents)
- ``text`` parts wrapping the file body in an ``<attached_file name="...">`` marker
"""

import re
from dataclasses import dataclass, field

from app.context.models import FilePart, ImagePart, Message, TextPart
from app.core.file_text import is_code_file

ATTACHMENT_MARKER = "<attached_file"

_ATTACHMENT_NAME_RE = re.compile(r'<attached_file\s+name="([^"]*)"')


@dataclass
class AttachmentInfo:
    """Coarse attachment classification for one request."""

    has_image: bool = False
    has_file: bool = False
    has_text_attachment: bool = False
    has_code_attachment: bool = False
    file_names: list[str] = field(default_factory=list)

    @property
    def has_any(self) -> bool:
        return self.has_image or self.has_file or self.has_text_attachment

    @property
    def image_only(self) -> bool:
        return self.has_image and not (self.has_file or self.has_text_attachment)


def is_attachment_text(text: str) -> bool:
    return ATTACHMENT_MARKER in text


def user_question_text(message: Message) -> str:
    """Plain question text of a message, attachment bodies excluded."""
    if not message.parts:
        return message.content.strip()

    texts = [
        part.text
        for part in message.parts
        if isinstance(part, TextPart) and not is_attachment_text(part.text)
    ]
    return "".join(texts).strip()


def latest_user_text(messages: list[Message]) -> str:
    """Question text of the newest user-authored message ('' if none)."""
    for message in reversed(messages):
        if message.role == "user":
            return user_question_text(message)
    return ""


def analyze_attachments(messages: list[Message]) -> AttachmentInfo:
    """Scan every message's parts for attachment signals."""
    info = AttachmentInfo()

    for message in messages:
        for part in message.parts or []:
            if isinstance(part, ImagePart):
                info.has_image = True
                if part.alt:
                    info.file_names.append(part.alt)
            elif isinstance(part, FilePart):
                info.has_file = True
                info.file_names.append(part.name)
            elif isinstance(part, TextPart) and is_attachment_text(part.text):
                info.has_text_attachment = True
                for name in _ATTACHMENT_NAME_RE.findall(part.text):
                    info.file_names.append(name)
                    if is_code_file(name):
                        info.has_code_attachment = True

    return info
