"""Invitation lookup endpoint for the signup page: ``GET /api/invitations/validate?token=...``."""

import json
import asyncio

from portfolio.services.invitation_manager import InvitationManager
from portfolio.utils.errors import PortfolioError, to_response
from portfolio.utils.logging import correlation_context, get_structured_logger, mask_sensitive_data, mask_token
from portfolio.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = get_structured_logger(__name__)


def _respond(status: int, body: dict, correlation_id: str) -> dict:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json", "X-Correlation-ID": correlation_id},
        "body": json.dumps(body),
    }


def handler(request, manager: InvitationManager = None):
    """
    Validate an invitation token.

    Returns the display data the signup form needs (agency, invited email, role,
    expiry) and never the token itself. Not-found, used and expired tokens map to
    404, 410 and 410 with a user-facing message.
    """
    with correlation_context() as correlation_id:
        query_params = request.get("query", {}) or {}
        token = (query_params.get("token") or "").strip()
        if not token:
            return _respond(400, {"error": "VALIDATION_ERROR", "message": "Missing invitation token.",
                                  "field": "token"}, correlation_id)

        manager = manager or InvitationManager()
        try:
            invitation = asyncio.run(manager.validate_token(token))
        except PortfolioError as e:
            status, body = to_response(e)
            logger.info("Invitation rejected", token=mask_token(token), error_code=e.code,
                        detail=mask_sensitive_data(str(e)))
            return _respond(status, body, correlation_id)
        except Exception as e:
            logger.exception("Invitation validation failed", token=mask_token(token),
                             error=mask_sensitive_data(str(e)))
            status, body = to_response(e)
            return _respond(status, body, correlation_id)

        return _respond(200, {
            "ok": True,
            "invitation": {
                "agency_id": invitation.agency_id,
                "agency_name": invitation.agency_name,
                "email": invitation.email,
                "role": invitation.role.value,
                "expires_at": invitation.expires_at.isoformat(),
            },
        }, correlation_id)
