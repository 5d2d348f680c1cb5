"""
Custom authentication backend for token-based auth.

Kept apart from any view module so that REST framework can import the
authentication classes during initialisation without circular imports.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """Token authentication using the ``Token`` keyword.

    Exists to provide a stable import path for the project's
    configuration and to allow later customisation.
    """

    keyword = 'Token'
