"""
cloudlink: connect desktop apps to Google Drive, Dropbox and OneDrive.

OAuth 2.0 authorization code + PKCE through the system browser, encrypted
token storage, lazy refresh, and document listing/download.
"""

__version__ = "0.1.0"
__all__ = ["CloudStorage", "CloudLinkConfig", "AuthError"]

from cloudlink.config import CloudLinkConfig  # noqa: E402
from cloudlink.errors import AuthError  # noqa: E402
from cloudlink.storage import CloudStorage  # noqa: E402
