"""
Connection credential contract.

A live connection is authenticated with a short-lived credential that is
valid for a single connection. Sources may be:
- the provider's ephemeral token endpoint (server side, holds the API key)
- this project's own token endpoint (client side, no secret on the client)

Key invariants:
- A source either returns a usable Credential or raises AuthError.
- Substituting the long-lived API key for an ephemeral token is a degraded,
  insecure path. It is only taken when explicitly enabled, and every time it
  is taken it is logged as CREDENTIAL_FALLBACK_INSECURE.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Credential:
    """
    token:
        Opaque secret appended to the connection URL. Never logged.
    model_id:
        Model the credential was issued for.
    expires_at:
        Provider-reported expiry (ISO-8601), when known.
    degraded:
        True when token is the long-lived key rather than an ephemeral token.
    """
    token: str
    model_id: str
    expires_at: str | None = None
    degraded: bool = False

    def __repr__(self) -> str:
        return (
            f"Credential(token=<redacted>, model_id={self.model_id!r}, "
            f"expires_at={self.expires_at!r}, degraded={self.degraded})"
        )


class CredentialSource(ABC):
    """Anything that can hand out a connection credential."""

    @abstractmethod
    async def fetch(self) -> Credential:
        """
        Obtain a fresh credential.

        Contract:
        - Raises AuthError when no credential can be obtained.
        - Must not retry internally.
        """
        raise NotImplementedError
