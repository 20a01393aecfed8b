"""Bank statement importers."""

from .base import BaseImporter, FileFormat
from .camt052 import Camt052Importer

__all__ = ["BaseImporter", "Camt052Importer", "FileFormat"]
