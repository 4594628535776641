"""Cloud storage provider file APIs."""

from cloudlink.providers.base import (
    SUPPORTED_EXTENSIONS,
    FileListingAPI,
    guess_mime_type,
    is_supported_document,
)
from cloudlink.providers.dropbox import DropboxAPI
from cloudlink.providers.google_drive import GoogleDriveAPI
from cloudlink.providers.onedrive import OneDriveAPI
from cloudlink.providers.registry import ProviderRegistry

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "DropboxAPI",
    "FileListingAPI",
    "GoogleDriveAPI",
    "OneDriveAPI",
    "ProviderRegistry",
    "guess_mime_type",
    "is_supported_document",
]
