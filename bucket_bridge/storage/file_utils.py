"""
File utility functions for object keys.

Content-type inference from key extensions, key/path helpers, and the
response overrides applied when signing view/download URLs.
"""

import mimetypes
from dataclasses import dataclass
from typing import Dict

from .exceptions import InvalidPathError


DELIMITER = "/"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

VIEW = "view"
DOWNLOAD = "download"
URL_OPERATIONS = (VIEW, DOWNLOAD)


@dataclass(frozen=True)
class UrlOverrides:
    """Response headers a signed URL asks the provider to send back."""

    content_disposition: str | None = None
    content_type: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.content_disposition is None and self.content_type is None


class FileUtils:
    """Utility class for key and content-type handling."""

    # Types the desktop browser relies on; some are missing or differ across
    # platform mimetypes databases.
    CUSTOM_TYPES: Dict[str, str] = {
        '.txt': 'text/plain',
        '.html': 'text/html',
        '.htm': 'text/html',
        '.css': 'text/css',
        '.js': 'application/javascript',
        '.json': 'application/json',
        '.png': 'image/png',
        '.jpg': 'image/jpeg',
        '.jpeg': 'image/jpeg',
        '.gif': 'image/gif',
        '.svg': 'image/svg+xml',
        '.webp': 'image/webp',
        '.pdf': 'application/pdf',
        '.doc': 'application/msword',
        '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
        '.xls': 'application/vnd.ms-excel',
        '.xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        '.zip': 'application/zip',
        '.mp3': 'audio/mpeg',
        '.mp4': 'video/mp4',
        '.md': 'text/markdown',
        '.markdown': 'text/markdown',
        '.yaml': 'application/yaml',
        '.yml': 'application/yaml',
        '.csv': 'text/csv',
        '.log': 'text/plain',
        '.ini': 'text/plain',
        '.xml': 'application/xml',
    }

    def __init__(self):
        """Initialize file utilities."""
        mimetypes.init()

    def get_extension(self, key: str) -> str:
        """Lower-cased extension of the key's last segment, without the dot."""
        name = self.basename(key)
        if "." not in name:
            return ""
        return name.rsplit(".", 1)[-1].lower()

    def get_content_type(self, key: str) -> str:
        """
        Determine the MIME type of an object from its key.

        Args:
            key: Object key or file name

        Returns:
            MIME type string, ``application/octet-stream`` when unknown
        """
        extension = self.get_extension(key)
        if not extension:
            return DEFAULT_CONTENT_TYPE

        custom = self.CUSTOM_TYPES.get(f".{extension}")
        if custom:
            return custom

        guessed, _ = mimetypes.guess_type(f"file.{extension}", strict=False)
        return guessed or DEFAULT_CONTENT_TYPE

    def is_pdf(self, key: str) -> bool:
        return self.get_extension(key) == "pdf"

    def basename(self, key: str) -> str:
        """Last path segment of a key (``a/b/c.txt`` -> ``c.txt``)."""
        return key.rstrip(DELIMITER).rsplit(DELIMITER, 1)[-1]

    def folder_key(self, path: str) -> str:
        """Normalize a folder path so it ends with exactly one delimiter."""
        if not path or not path.strip(DELIMITER):
            raise InvalidPathError("Folder path must not be empty", path=path)
        return path if path.endswith(DELIMITER) else f"{path}{DELIMITER}"

    def is_folder_key(self, key: str) -> bool:
        return key.endswith(DELIMITER)

    def attachment_disposition(self, key: str) -> str:
        return f'attachment; filename="{self.basename(key)}"'

    def build_url_overrides(self, key: str, operation: str) -> UrlOverrides:
        """
        Work out the response overrides for a view or download URL.

        Downloads force ``attachment`` with the original basename. Views leave
        the disposition alone so browsers render inline; PDFs additionally get
        an explicit ``application/pdf`` content type.

        Raises:
            ValueError: If ``operation`` is neither ``view`` nor ``download``
        """
        if operation == DOWNLOAD:
            return UrlOverrides(content_disposition=self.attachment_disposition(key))
        if operation == VIEW:
            if self.is_pdf(key):
                return UrlOverrides(content_type="application/pdf")
            return UrlOverrides()
        raise ValueError(f"Unsupported URL operation '{operation}', expected one of {URL_OPERATIONS}")


# Global instance for convenience
file_utils = FileUtils()


__all__ = [
    "FileUtils",
    "UrlOverrides",
    "file_utils",
    "DELIMITER",
    "DEFAULT_CONTENT_TYPE",
    "VIEW",
    "DOWNLOAD",
    "URL_OPERATIONS",
]
