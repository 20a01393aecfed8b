"""Base interface for bank statement importers.

Defines the contract that all importers implement (Template Method pattern):
``parse_file`` validates the file, detects its encoding and hands the text to
the format-specific ``parse``.
"""

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from ....utils.config import Settings, get_settings
from ....utils.logging import get_logger
from ...domain.value_objects import ParsedStatement

logger = get_logger(__name__)


class FileFormat(str, Enum):
    """Supported bank statement file formats."""

    CAMT052 = "camt.052"
    CAMT053 = "camt.053"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class BaseImporter(ABC):
    """Abstract base class for bank statement importers.

    Subclassing:
        1. Implement parse() to turn the document text into a ParsedStatement
        2. Optionally override detect_encoding() for special encoding detection
        3. Optionally override validate_file() for format-specific validation
    """

    file_format: FileFormat = FileFormat.UNKNOWN

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    @abstractmethod
    def parse(self, content: str | bytes) -> ParsedStatement:
        """Parse a statement document.

        Args:
            content: Raw document (text or bytes)

        Returns:
            ParsedStatement with header and credit transactions

        Raises:
            FormatError: If the document cannot be read
            SchemaError: If a required element is missing
        """

    def parse_file(self, file_path: Path | str) -> ParsedStatement:
        """Validate, decode and parse a statement file."""
        path = Path(file_path)
        self.validate_file(path)
        encoding = self.detect_encoding(path)

        logger.debug(
            "statement_file_read",
            file=path.name,
            encoding=encoding,
            format=self.file_format.value,
        )
        return self.parse(path.read_text(encoding=encoding))

    def validate_file(self, file_path: Path) -> None:
        """Validate that file exists and is readable.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file is empty
        """
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        if file_path.stat().st_size == 0:
            raise ValueError(f"File is empty: {file_path}")

    def detect_encoding(self, file_path: Path) -> str:
        """Detect file encoding by trying common encodings in order.

        Returns:
            Encoding name (e.g., "utf-8", "iso-8859-1")
        """
        encodings = ["utf-8", "iso-8859-1", "cp1252"]

        for encoding in encodings:
            try:
                with open(file_path, encoding=encoding) as f:
                    f.read()
                return encoding
            except UnicodeDecodeError:
                continue

        return "utf-8"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(format='{self.file_format.value}')>"
