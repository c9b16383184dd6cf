"""
Identity Gate
=============

Bearer credentials are DRF auth tokens:

    Authorization: Bearer <token>

Views get request.user from BearerTokenAuthentication.

verify_credential() is the same check without a request: a raw credential
in, a user id or Unauthenticated out. Nothing in the HTTP layer calls it.
"""
from rest_framework.authentication import TokenAuthentication
from rest_framework.authtoken.models import Token

from .exceptions import Unauthenticated


class BearerTokenAuthentication(TokenAuthentication):
    """TokenAuthentication with the 'Bearer' keyword instead of 'Token'."""
    keyword = 'Bearer'


def verify_credential(credential):
    """
    Resolve a bearer credential to a user id.

    Accepts the bare token or the full header value ("Bearer <token>").
    Raises Unauthenticated for missing, unknown or inactive credentials.
    """
    if not credential:
        raise Unauthenticated('No token provided.')

    parts = credential.split()
    if len(parts) == 2 and parts[0] == BearerTokenAuthentication.keyword:
        key = parts[1]
    elif len(parts) == 1:
        key = parts[0]
    else:
        raise Unauthenticated('Invalid token header.')

    token = Token.objects.select_related('user').filter(key=key).first()
    if token is None or not token.user.is_active:
        raise Unauthenticated('Invalid or expired token.')
    return token.user_id
