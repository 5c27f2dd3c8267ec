"""Resolve the calling owner from the header forwarded by the gateway."""
from __future__ import annotations

from typing import Tuple

from django.conf import settings
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.request import Request

# Matches the owner_id column width on FormSchema and Record.
OWNER_ID_MAX_LENGTH = 64


class Owner:
    """Authenticated caller; only the opaque owner id is known here."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, owner_id: str) -> None:
        self.id = owner_id
        self.pk = owner_id

    def __str__(self) -> str:
        return self.id


def owner_header() -> str:
    return getattr(settings, "DATAFORM_OWNER_HEADER", "X-Owner-Id")


class OwnerHeaderAuthentication(BaseAuthentication):
    """Trust the owner id header set upstream by the identity layer."""

    def authenticate(self, request: Request) -> Tuple[Owner, None] | None:
        owner_id = (request.headers.get(owner_header()) or "").strip()
        if not owner_id:
            return None
        if len(owner_id) > OWNER_ID_MAX_LENGTH:
            raise AuthenticationFailed(f"Owner id must be at most {OWNER_ID_MAX_LENGTH} characters.")
        return Owner(owner_id), None

    def authenticate_header(self, request: Request) -> str:
        return owner_header()
