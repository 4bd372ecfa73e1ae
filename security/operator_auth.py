from __future__ import annotations

import logging
from typing import Any, Dict, Set

from fastapi import Depends, HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from config.settings import settings

log = logging.getLogger("medrem.operator_auth")

# Shared HTTP session for fetching Google's token signing certs.
_transport = google_requests.Request()


def _split_csv(v: str) -> Set[str]:
    return {x.strip() for x in (v or "").split(",") if x.strip()}


def _bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="missing_bearer_token")
    return token.strip()


def _check_invoker(claims: Dict[str, Any]) -> None:
    allowed_subs = _split_csv(settings.OPERATOR_INVOKER_SUBS)
    allowed_emails = _split_csv(settings.OPERATOR_INVOKER_EMAILS)
    sub = claims.get("sub", "")
    email = claims.get("email", "")

    if allowed_subs and sub not in allowed_subs:
        raise HTTPException(status_code=403, detail="operator_sub_not_allowed")
    # A token without a verified email never matches the email allow-list.
    if allowed_emails and (email not in allowed_emails or claims.get("email_verified") is not True):
        raise HTTPException(status_code=403, detail="operator_email_not_allowed")


def verify_operator_request(request: Request) -> Dict[str, Any]:
    """
    Accept Google-signed OIDC ID tokens, as sent by Cloud Scheduler's HTTP
    target with an OIDC service account, or by an operator via gcloud.
    """
    token = _bearer_token(request)
    if not settings.OPERATOR_AUTH_AUDIENCE:
        # Fail closed until the audience is configured.
        raise HTTPException(status_code=500, detail="operator_auth_audience_not_configured")

    try:
        claims = id_token.verify_oauth2_token(token, _transport, audience=settings.OPERATOR_AUTH_AUDIENCE)
    except Exception as e:
        log.warning("operator_auth_failed", extra={"extra": {"event": "operator_auth_failed", "error": str(e)}})
        raise HTTPException(status_code=401, detail="invalid_operator_token")

    _check_invoker(claims)
    log.info(
        "operator_authenticated",
        extra={"extra": {"event": "operator_authenticated", "email": claims.get("email", ""), "path": request.url.path}},
    )
    return claims


def require_operator_auth(request: Request) -> Dict[str, Any]:
    return verify_operator_request(request)

OperatorClaims = Depends(require_operator_auth)
