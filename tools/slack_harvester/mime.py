"""MIME sniffing and MIME → file extension resolution."""

from __future__ import annotations

import io
import logging

import filetype
from PIL import Image, UnidentifiedImageError

from .errors import ExtensionUnknown

logger = logging.getLogger("harvester.mime")

# Number of leading bytes handed to the sniffers
SNIFF_BYTES = 65536

# Map file extension → equivalent MIME types
MIME_EXTENSIONS: dict[str, frozenset[str]] = {
    "png": frozenset({"image/png", "image/x-png"}),
    "bmp": frozenset({
        "image/bmp",
        "image/x-bmp",
        "image/x-bitmap",
        "image/x-xbitmap",
        "image/x-win-bitmap",
        "image/x-windows-bmp",
        "image/ms-bmp",
        "image/x-ms-bmp",
        "application/bmp",
        "application/x-bmp",
        "application/x-win-bitmap",
    }),
    "gif": frozenset({"image/gif"}),
    "jpeg": frozenset({"image/jpeg", "image/pjpeg"}),
    "wmv": frozenset({"video/x-ms-wmv", "video/x-ms-asf"}),
    "ac3": frozenset({"audio/ac3"}),
    "flac": frozenset({"audio/x-flac"}),
    "ogg": frozenset({"audio/ogg", "video/ogg", "application/ogg"}),
    "svg": frozenset({"image/svg+xml"}),
    "3g2": frozenset({"video/3gpp2"}),
    "3gp": frozenset({"video/3gp", "video/3gpp"}),
    "mp4": frozenset({"video/mp4"}),
    "m4a": frozenset({"audio/x-m4a"}),
    "f4v": frozenset({"video/x-f4v"}),
    "flv": frozenset({"video/x-flv"}),
    "webm": frozenset({"video/webm"}),
    "aac": frozenset({"audio/x-acc"}),
    "mpeg": frozenset({"video/mpeg"}),
    "mov": frozenset({"video/quicktime"}),
    "avi": frozenset({
        "video/x-msvideo",
        "video/msvideo",
        "video/avi",
        "application/x-troff-msvideo",
    }),
    "mp3": frozenset({"audio/mpeg", "audio/mpg", "audio/mpeg3", "audio/mp3"}),
    "swf": frozenset({"application/x-shockwave-flash"}),
    "mid": frozenset({"audio/midi"}),
    "aif": frozenset({"audio/x-aiff", "audio/aiff"}),
    "tiff": frozenset({"image/tiff"}),
}

_EXTENSION_BY_MIME: dict[str, str] = {
    mime: ext for ext, mimes in MIME_EXTENSIONS.items() for mime in mimes
}

# ISO base media brands (bytes 8-11 after "ftyp") whose generic mp4 label hides the format
ISO_BRANDS: dict[bytes, str] = {
    b"M4A ": "audio/x-m4a",
    b"M4B ": "audio/x-m4a",
    b"3gp4": "video/3gpp",
    b"3gp5": "video/3gpp",
    b"3gp6": "video/3gpp",
    b"3gp7": "video/3gpp",
    b"3gs7": "video/3gpp",
    b"3g2a": "video/3gpp2",
    b"3g2b": "video/3gpp2",
    b"3g2c": "video/3gpp2",
    b"qt  ": "video/quicktime",
}

# filetype labels → the names used in MIME_EXTENSIONS
FILETYPE_ALIASES: dict[str, str] = {
    "audio/mp4": "audio/x-m4a",
    "audio/m4a": "audio/x-m4a",
    "audio/aac": "audio/x-acc",
    "audio/x-aac": "audio/x-acc",
    "audio/aiff": "audio/x-aiff",
    "audio/flac": "audio/x-flac",
    "audio/mid": "audio/midi",
    "video/avi": "video/x-msvideo",
}


def resolve_extension(mimetype: str) -> str:
    """Return the canonical extension for *mimetype* (exact, case-sensitive match)."""
    try:
        return _EXTENSION_BY_MIME[mimetype]
    except KeyError:
        raise ExtensionUnknown(mimetype) from None


# ── sniffing ─────────────────────────────────────────────────────


def _sniff_image(head: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(head)) as img:
            return img.get_format_mimetype()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None


def _sniff_iso_brand(head: bytes) -> str | None:
    if len(head) < 12 or head[4:8] != b"ftyp":
        return None
    return ISO_BRANDS.get(head[8:12])


def _looks_like_svg(head: bytes) -> bool:
    text = head[:4096].lstrip().lower()
    if text.startswith(b"<?xml") or text.startswith(b"<!doctype svg") or text.startswith(b"<svg"):
        return b"<svg" in text
    return False


def sniff_mimetype(head: bytes) -> str | None:
    """Guess the MIME type of a payload from its leading bytes.

    Raster images are identified by Pillow, ISO media brands from the
    ``ftyp`` box, everything else by the ``filetype`` signature table,
    whose labels are normalised to the names in MIME_EXTENSIONS.  Returns
    None when nothing matches.
    """
    if not head:
        return None
    mime = _sniff_image(head)
    if mime:
        return mime
    mime = _sniff_iso_brand(head)
    if mime:
        return mime
    kind = filetype.guess(head)
    if kind is not None:
        return FILETYPE_ALIASES.get(kind.mime, kind.mime)
    if _looks_like_svg(head):
        return "image/svg+xml"
    logger.debug("No signature matched %d-byte head", len(head))
    return None
