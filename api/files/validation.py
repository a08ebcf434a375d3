"""
Content validation for uploaded files

Decides whether a file may enter storage by checking its extension and
the type sniffed from its leading bytes. The client-declared content type
plays no part in the decision; it is recorded as sent.
"""

import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Mapping, Iterable

import puremagic

from core.exceptions import UnsupportedContentType, UnsupportedExtension

log = logging.getLogger(__name__)

SNIFF_BYTES = 512


@dataclass(frozen=True)
class Admission:
    """A file that passed validation"""

    extension: str
    content_type: str


def file_extension(filename: str) -> str:
    """Lowercase extension including the dot, or an empty string"""
    return os.path.splitext(filename or "")[1].lower()


def sniff_content_types(head: bytes) -> list[str]:
    """
    Classify bytes by magic number.

    Returns the MIME types of the most confident matches only, longest
    signature first. Matches without a MIME type are ignored. A short
    container signature (a bare RIFF or EBML header) matches many formats
    at once, so every type in that tier is returned and the caller can
    tell the content is ambiguous. Empty or unrecognised content yields
    an empty list.
    """
    if not head:
        return []
    try:
        matches = puremagic.magic_string(head)
    except puremagic.PureError:
        return []
    typed = [match for match in matches if match.mime_type]
    if not typed:
        return []
    best = max(match.confidence for match in typed)
    types = []
    for match in typed:
        if match.confidence == best and match.mime_type not in types:
            types.append(match.mime_type)
    return types


class ContentValidator:
    """
    Admission gate for one class of writes (upload or replace).

    Args:
        allowed_types: lowercase extension (".jpg") -> MIME types the
            sniffed content may have for that extension
    """

    def __init__(self, allowed_types: Mapping[str, Iterable[str]]):
        self.allowed_types = {
            ext.lower() if ext.startswith(".") else f".{ext.lower()}": frozenset(types)
            for ext, types in allowed_types.items()
        }

    @property
    def allowed_extensions(self) -> frozenset[str]:
        return frozenset(self.allowed_types)

    def validate(self, filename: str, stream: BinaryIO) -> Admission:
        """
        Admit or reject a file before anything is stored.

        The stream is read from its current position and rewound there
        afterwards, whatever the outcome.

        Raises:
            UnsupportedExtension: Extension missing or not allowed
            UnsupportedContentType: Content unrecognised, ambiguous, or of
                a type the extension does not permit
        """
        extension = file_extension(filename)
        permitted = self.allowed_types.get(extension)
        if not permitted:
            log.info("Rejected %r: unsupported extension %r", filename, extension)
            raise UnsupportedExtension(f"Unsupported file extension: {extension!r}")

        start = stream.tell()
        try:
            head = stream.read(SNIFF_BYTES)
        finally:
            stream.seek(start)

        sniffed = sniff_content_types(head)
        if sniffed and all(content_type in permitted for content_type in sniffed):
            log.debug("Admitted %r as %s", filename, sniffed[0])
            return Admission(extension=extension, content_type=sniffed[0])

        log.info(
            "Rejected %r: content sniffed as %s, expected one of %s",
            filename,
            sniffed or "unknown",
            sorted(permitted),
        )
        raise UnsupportedContentType(
            f"Content of {filename!r} sniffed as {sniffed or 'unknown'}"
        )
