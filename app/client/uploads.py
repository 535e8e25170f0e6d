"""Turn uploaded files into message parts."""

from dataclasses import dataclass

from app.context.models import FilePart, ImagePart, MessagePart, TextPart
from app.core.file_text import (
    extract_text,
    format_attached_file,
    get_extension,
    is_image_file,
    is_pdf_file,
    is_text_file,
    to_data_url,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

# Image formats the provider accepts
_IMAGE_MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


@dataclass
class Upload:
    """A file picked by the user."""

    name: str
    data: bytes
    content_type: str = ""


def _image_media_type(upload: Upload) -> str | None:
    if not is_image_file(upload.name, upload.content_type):
        return None
    if upload.content_type in _IMAGE_MEDIA_TYPES.values():
        return upload.content_type
    return _IMAGE_MEDIA_TYPES.get(get_extension(upload.name))


def upload_to_part(upload: Upload) -> MessagePart:
    """
    Images and PDFs become data-URL parts; text and code files are inlined
    inside the attachment marker.

    Raises:
        ValueError: If the file type is unsupported or the text can't be decoded
    """
    image_type = _image_media_type(upload)
    if image_type:
        return ImagePart(url=to_data_url(upload.data, image_type), alt=upload.name)

    if is_pdf_file(upload.name, upload.content_type):
        return FilePart(
            name=upload.name,
            url=to_data_url(upload.data, "application/pdf"),
            mime_type="application/pdf",
        )

    if is_text_file(upload.name, upload.content_type):
        result = extract_text(upload.data)
        if result.truncated:
            logger.info(f"Attachment {upload.name} truncated from {result.original_length:,} chars")
        return TextPart(text=format_attached_file(upload.name, len(upload.data), result))

    raise ValueError(f"Unsupported file type: {upload.name} ({upload.content_type or 'unknown'})")
