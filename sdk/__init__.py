"""Identity-provider SDK — credential cache, roster client, models and exceptions.

Usage::

    from sdk import CredentialCache, ProviderClient, AuthFailure, ProviderUnavailable

    creds = CredentialCache(base_url, username, password)
    client = ProviderClient(base_url, creds)
    groups = await client.fetch_principal("alice")
"""

from sdk.client import CredentialCache, ProviderClient, build_default_client
from sdk.exceptions import APIException, AuthFailure, ProviderUnavailable

__all__ = [
    "CredentialCache",
    "ProviderClient",
    "build_default_client",
    "APIException",
    "AuthFailure",
    "ProviderUnavailable",
]
