"""Invitation acceptance endpoint: ``POST /api/invitations/accept``."""

import json
import asyncio

from portfolio.services.identity_service import IdentityService
from portfolio.utils.errors import PortfolioError, ValidationError, to_response
from portfolio.utils.logging import correlation_context, get_structured_logger, mask_sensitive_data, mask_token
from portfolio.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = get_structured_logger(__name__)

REQUIRED_FIELDS = ("token", "email", "password", "name")


def _respond(status: int, body: dict, correlation_id: str) -> dict:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json", "X-Correlation-ID": correlation_id},
        "body": json.dumps(body),
    }


def _parse_body(request) -> dict:
    body = request.get("body") or {}
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body or "{}")
        except json.JSONDecodeError as e:
            raise ValidationError(f"invalid JSON body: {e}", user_message="Request body must be valid JSON.")
    if not isinstance(body, dict):
        raise ValidationError("request body must be an object", user_message="Request body must be a JSON object.")
    for field in REQUIRED_FIELDS:
        if not body.get(field):
            raise ValidationError(f"missing {field}", field=field)
    return body


def handler(request, service: IdentityService = None):
    """
    Create an account from an invitation.

    Body: ``{"token", "email", "password", "name"}``. On success the new profile
    (agency and role taken from the invitation) is returned with status 201.
    """
    with correlation_context() as correlation_id:
        if (request.get("method") or "POST").upper() != "POST":
            return _respond(405, {"error": "METHOD_NOT_ALLOWED", "message": "Use POST."}, correlation_id)

        token = None
        try:
            body = _parse_body(request)
            token = body["token"]
            service = service or IdentityService()
            profile = asyncio.run(service.sign_up_with_invitation(
                token, body["email"], body["password"], body["name"],
            ))
        except PortfolioError as e:
            status, response_body = to_response(e)
            logger.info("Invitation acceptance rejected", token=mask_token(token), error_code=e.code,
                        detail=mask_sensitive_data(str(e)))
            return _respond(status, response_body, correlation_id)
        except Exception as e:
            logger.exception("Invitation acceptance failed", token=mask_token(token),
                             error=mask_sensitive_data(str(e)))
            status, response_body = to_response(e)
            return _respond(status, response_body, correlation_id)

        return _respond(201, {
            "ok": True,
            "profile": profile.model_dump(mode="json", include={"id", "agency_id", "name", "email", "role"}),
        }, correlation_id)
