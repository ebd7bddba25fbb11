"""Gmail API service built from a cached OAuth token.

Obtaining and refreshing the token is handled outside this package; the
token file only has to be an authorized-user JSON with a refresh token.
"""

from __future__ import annotations

import logging
from pathlib import Path

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build

from gmail_analyzer.exceptions import AuthenticationError, SourceFetchError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


def load_credentials(token_path: str | Path) -> Credentials:
    """Load cached OAuth credentials."""
    token_path = Path(token_path)
    if not token_path.exists():
        raise AuthenticationError(
            f"Token file not found: {token_path}. Authorize the Gmail account first."
        )
    try:
        return Credentials.from_authorized_user_file(str(token_path), SCOPES)
    except (ValueError, OSError) as e:
        raise AuthenticationError(f"Failed to load token {token_path}: {e}") from e


def build_gmail_service(token_path: str | Path) -> Resource:
    """Build a Gmail API service resource from a cached token.

    Raises:
        AuthenticationError: The token is missing or unreadable.
        SourceFetchError: The Gmail discovery document could not be loaded.
    """
    creds = load_credentials(token_path)
    logger.debug(f"Loaded Gmail credentials from {token_path}")
    try:
        return build("gmail", "v1", credentials=creds, cache_discovery=False)
    except Exception as e:
        raise SourceFetchError(f"Failed to build Gmail service: {e}") from e
