"""Turn files on disk into staged attachments.

Images are encoded as base64 data URLs (also used as their preview),
everything else is read as text.
"""

import base64
import mimetypes
from pathlib import Path

from .models import Attachment, AttachmentKind


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or "text/plain"


def attachment_from_path(path: str | Path) -> Attachment:
    """Read a file into an Attachment.

    Args:
        path: File to attach

    Returns:
        Image attachment with a data URL for ``image/*`` files, otherwise a
        file attachment holding the decoded text

    Raises:
        FileNotFoundError: If the file does not exist
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(f"No such file: {file_path}")

    mime_type = guess_mime_type(file_path)
    if mime_type.startswith("image/"):
        encoded = base64.b64encode(file_path.read_bytes()).decode("ascii")
        data_url = f"data:{mime_type};base64,{encoded}"
        return Attachment(
            kind=AttachmentKind.IMAGE,
            name=file_path.name,
            mime_type=mime_type,
            data=data_url,
            preview=data_url,
        )

    return Attachment(
        kind=AttachmentKind.FILE,
        name=file_path.name,
        mime_type=mime_type,
        data=file_path.read_text(encoding="utf-8", errors="replace"),
    )
