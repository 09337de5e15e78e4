"""
Client portal session tokens.

Portal clients are not Django users. They authenticate with phone and
password and receive a signed, expiring token stored in a cookie. The token
carries ``{"clientId", "type": "client", "exp"}`` and is verified for
signature, type and expiry on every request.
"""

import logging
from functools import wraps

from django.conf import settings
from django.core import signing
from django.http import JsonResponse
from django.utils import timezone

logger = logging.getLogger(__name__)

CLIENT_TOKEN_TYPE = "client"


class InvalidClientToken(Exception):
    pass


def _max_age() -> int:
    return int(getattr(settings, "CLIENT_TOKEN_MAX_AGE", 7 * 24 * 60 * 60))


def _salt() -> str:
    return getattr(settings, "CLIENT_TOKEN_SALT", "mundosolar.client-portal")


def issue_client_token(client) -> str:
    now = int(timezone.now().timestamp())
    payload = {
        "clientId": client.pk,
        "type": CLIENT_TOKEN_TYPE,
        "exp": now + _max_age(),
    }
    return signing.dumps(payload, salt=_salt(), compress=True)


def decode_client_token(token: str) -> dict:
    """Return the token payload or raise InvalidClientToken."""
    if not token:
        raise InvalidClientToken("missing token")
    try:
        payload = signing.loads(token, salt=_salt(), max_age=_max_age())
    except signing.SignatureExpired as e:
        raise InvalidClientToken("expired token") from e
    except signing.BadSignature as e:
        raise InvalidClientToken("bad signature") from e

    if not isinstance(payload, dict) or payload.get("type") != CLIENT_TOKEN_TYPE:
        raise InvalidClientToken("wrong token type")
    if not payload.get("clientId"):
        raise InvalidClientToken("missing client id")
    if int(payload.get("exp") or 0) < int(timezone.now().timestamp()):
        raise InvalidClientToken("expired token")
    return payload


def set_client_cookie(response, token: str):
    response.set_cookie(
        settings.CLIENT_TOKEN_COOKIE,
        token,
        max_age=_max_age(),
        httponly=True,
        secure=getattr(settings, "CLIENT_TOKEN_SECURE", False),
        samesite="Lax",
        path="/",
    )
    return response


def clear_client_cookie(response):
    response.delete_cookie(settings.CLIENT_TOKEN_COOKIE, path="/", samesite="Lax")
    return response


def get_portal_client(request):
    """Resolve the active Client behind the request's token cookie, or None."""
    from main.models import Client

    token = request.COOKIES.get(settings.CLIENT_TOKEN_COOKIE)
    try:
        payload = decode_client_token(token)
    except InvalidClientToken as e:
        if token:
            logger.info("Rejected client token: %s", e)
        return None
    return Client.objects.filter(pk=payload["clientId"], is_active=True).first()


def require_client_session(view_func):
    """Gate a portal view behind a valid client token; sets request.portal_client."""

    @wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        client = get_portal_client(request)
        if client is None:
            return JsonResponse({"success": False, "error": "No autorizado"}, status=401)
        request.portal_client = client
        return view_func(request, *args, **kwargs)

    return _wrapped
