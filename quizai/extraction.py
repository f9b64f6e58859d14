"""Text extraction collaborator.

Parsing PDF, Word and PowerPoint files is left to an implementation supplied
by the deployment; this module only fixes the contract the lecture registry
talks to.
"""

from abc import ABC, abstractmethod
from enum import Enum


class DocumentFormat(str, Enum):
    PDF = "pdf"
    DOC = "doc"
    DOCX = "docx"
    PPT = "ppt"
    PPTX = "pptx"


MIME_FORMATS = {
    "application/pdf": DocumentFormat.PDF,
    "application/msword": DocumentFormat.DOC,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
    "application/vnd.ms-powerpoint": DocumentFormat.PPT,
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": DocumentFormat.PPTX,
}


class ExtractionError(Exception):
    pass


def format_for_mime(mime_type: str) -> DocumentFormat | None:
    return MIME_FORMATS.get((mime_type or "").lower())


class TextExtractor(ABC):
    """Turns an uploaded document into plain text.

    Implementations raise ExtractionError on failure. PowerPoint extraction may
    instead return a placeholder string so that the upload still succeeds.
    """

    @abstractmethod
    def extract(self, data: bytes, declared_format: DocumentFormat) -> str:
        raise NotImplementedError
