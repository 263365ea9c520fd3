"""HTTP clients for external service communication."""

from credo_service.clients.identity_client import IdentityClient

__all__ = ["IdentityClient"]
