"""OAuth 1.0a request signing (HMAC-SHA1) for the X API.

The X API tier we use only accepts user-context OAuth 1.0a, so every call
carries an ``Authorization: OAuth ...`` header built here with oauthlib.
"""

from typing import Optional
from urllib.parse import urlsplit

from oauthlib.oauth1 import SIGNATURE_HMAC, Client


def create_authorization_header(
    method: str,
    url: str,
    consumer_key: str,
    consumer_secret: str,
    access_token: str,
    access_token_secret: str,
    nonce: Optional[str] = None,
    timestamp: Optional[str] = None,
) -> str:
    """Build the ``Authorization`` header value for a signed request.

    Query parameters of ``url`` are part of the signature. ``nonce`` and
    ``timestamp`` are generated when omitted; pass them to get a
    reproducible signature. Raises ValueError for URLs without a scheme or
    host.
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Invalid URL for OAuth signing: {url!r}")

    client = Client(
        consumer_key,
        client_secret=consumer_secret,
        resource_owner_key=access_token,
        resource_owner_secret=access_token_secret,
        signature_method=SIGNATURE_HMAC,
        nonce=nonce,
        timestamp=timestamp,
    )
    _, headers, _ = client.sign(url, http_method=method.upper())
    return headers["Authorization"]
