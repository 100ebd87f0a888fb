"""Authentication collaborator package."""

from pocket_ledger.auth.provider import AuthProvider, AuthUser, InMemoryAuthProvider

__all__ = ["AuthProvider", "AuthUser", "InMemoryAuthProvider"]
