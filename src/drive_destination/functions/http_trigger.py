"""HTTP trigger blueprint — status endpoint and the OAuth authorization routes."""

import json
import logging
from urllib.parse import urlencode

import azure.functions as func

from drive_destination import __version__
from drive_destination.config import load_config
from drive_destination.drive.auth import auth_session_from_config
from drive_destination.errors import AuthExchangeError, NotConfiguredError

logger = logging.getLogger(__name__)

bp = func.Blueprint()


def _redirect(url: str, *, status: str | None = None, message: str | None = None) -> func.HttpResponse:
    """Build a 302 response, appending status and message as query parameters."""
    params = {k: v for k, v in (("status", status), ("message", message)) if v}
    if params:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{urlencode(params)}"
    return func.HttpResponse(status_code=302, headers={"Location": url})


def _server_error() -> func.HttpResponse:
    error_body = json.dumps({"status": "error", "message": "Internal server error"})
    return func.HttpResponse(error_body, status_code=500, mimetype="application/json")


@bp.route(route="status", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def status(req: func.HttpRequest) -> func.HttpResponse:
    """Report version and whether Google Drive is configured and authorized."""
    logger.info("[status] status requested")

    try:
        session = auth_session_from_config(load_config())
        body = json.dumps(
            {
                "status": "ok",
                "version": __version__,
                "configured": session.is_configured,
                "authorized": session.is_authorized,
            }
        )
        return func.HttpResponse(body, status_code=200, mimetype="application/json")

    except Exception:
        logger.error("[status] status check failed", exc_info=True)
        return _server_error()


@bp.route(route="authorize", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def authorize(req: func.HttpRequest) -> func.HttpResponse:
    """Redirect the browser to the Google consent page."""
    logger.info("[authorize] authorization requested")

    try:
        config = load_config()
    except Exception:
        logger.error("[authorize] failed to load configuration", exc_info=True)
        return _server_error()

    try:
        session = auth_session_from_config(config)
        return _redirect(session.authorization_url())

    except NotConfiguredError as exc:
        logger.warning("[authorize] OAuth client not configured")
        return _redirect(config.settings_url, status="error", message=str(exc))
    except Exception as exc:
        logger.error("[authorize] failed to create authorization URL", exc_info=True)
        return _redirect(
            config.settings_url,
            status="error",
            message=f"Failed to create authorization URL: {exc}",
        )


@bp.route(route="callback", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def callback(req: func.HttpRequest) -> func.HttpResponse:
    """Exchange the authorization code returned by Google and persist the tokens."""
    try:
        config = load_config()
    except Exception:
        logger.error("[callback] failed to load configuration", exc_info=True)
        return _server_error()

    code = req.params.get("code")
    error = req.params.get("error")

    if error:
        logger.warning("[callback] authorization denied; error:%s", error)
        return _redirect(
            config.settings_url, status="error", message=f"Authorization failed: {error}"
        )
    if not code:
        logger.warning("[callback] no authorization code received")
        return _redirect(
            config.settings_url, status="error", message="No authorization code received."
        )

    try:
        session = auth_session_from_config(config)
        session.exchange_authorization_code(code)
        logger.info("[callback] Google Drive connected")
        return _redirect(
            config.settings_url, status="ok", message="Google Drive connected successfully."
        )

    except (AuthExchangeError, NotConfiguredError) as exc:
        return _redirect(
            config.settings_url,
            status="error",
            message=f"Failed to complete authorization: {exc}",
        )
    except Exception:
        logger.error("[callback] authorization callback failed", exc_info=True)
        return _redirect(
            config.settings_url,
            status="error",
            message="Failed to complete authorization: internal error",
        )


@bp.route(route="revoke", methods=["GET", "POST"], auth_level=func.AuthLevel.FUNCTION)
def revoke(req: func.HttpRequest) -> func.HttpResponse:
    """Clear the stored tokens."""
    logger.info("[revoke] revocation requested")

    try:
        config = load_config()
        auth_session_from_config(config).revoke()
        return _redirect(
            config.settings_url, status="ok", message="Google Drive disconnected successfully."
        )

    except Exception:
        logger.error("[revoke] revocation failed", exc_info=True)
        return _server_error()
