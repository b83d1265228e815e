"""
Data Ingestion Module
"""
from .loader import FileFormat, InputLoader

__all__ = [
    "FileFormat",
    "InputLoader",
]
