"""HTTP trigger blueprint — health, manual sync, connect and disconnect endpoints."""

import json
import logging

import azure.functions as func

from onedrive_sync import __version__
from onedrive_sync.errors import AuthError, NetworkError
from onedrive_sync.orchestration.runtime import get_runtime

logger = logging.getLogger(__name__)

bp = func.Blueprint()


def _json_response(payload: dict, status_code: int = 200) -> func.HttpResponse:  # type: ignore[type-arg]
    return func.HttpResponse(json.dumps(payload), status_code=status_code, mimetype="application/json")


def _internal_error() -> func.HttpResponse:
    return _json_response({"status": "error", "message": "Internal server error"}, 500)


@bp.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint.

    Returns service status and version.
    """
    logger.info("[health_check] health check requested")

    try:
        return _json_response({"status": "ok", "version": __version__})

    except Exception:
        logger.error("[health_check] health check failed", exc_info=True)
        return _internal_error()


@bp.route(route="sync", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def manual_sync(req: func.HttpRequest) -> func.HttpResponse:
    """Manual trigger endpoint — runs a sync pass on demand.

    Requires a function key for authentication. Executes the same logic
    as the timer trigger but returns the report in the HTTP response.
    A call made while a pass is running returns outcome "coalesced".
    """
    logger.info("[manual_sync] manual sync requested")

    try:
        report = get_runtime().orchestrator.sync()
        logger.info(
            "[manual_sync] sync finished; outcome:%s;uploaded:%d;failed:%d",
            report.outcome.value,
            report.files_uploaded,
            len(report.errors),
        )
        return _json_response({"status": "ok", **report.to_dict()})

    except Exception:
        logger.error("[manual_sync] manual sync failed", exc_info=True)
        return _internal_error()


@bp.route(route="authorize", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
def authorization_url(req: func.HttpRequest) -> func.HttpResponse:
    """Return an authorization URL and the PKCE verifier the caller must keep."""
    logger.info("[authorization_url] authorization URL requested")

    try:
        request = get_runtime().tokens.authorization_request()
        return _json_response({"auth_url": request.url, "code_verifier": request.code_verifier})

    except Exception:
        logger.error("[authorization_url] failed to build authorization URL", exc_info=True)
        return _internal_error()


@bp.route(route="connect", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def connect(req: func.HttpRequest) -> func.HttpResponse:
    """Exchange an authorization code (and its PKCE verifier) for tokens.

    Expects a JSON body {"code": ..., "code_verifier": ...}.
    """
    logger.info("[connect] code exchange requested")

    try:
        try:
            body = req.get_json()
            code = body["code"]
            verifier = body["code_verifier"]
        except (ValueError, KeyError, TypeError):
            return _json_response(
                {"status": "error", "message": "code and code_verifier are required"}, 400
            )

        get_runtime().tokens.initial_exchange(code, verifier)
        return _json_response({"status": "ok"})

    except AuthError as exc:
        logger.warning("[connect] code exchange rejected; error_code:%s", exc.error_code)
        return _json_response({"status": "error", "message": str(exc)}, 401)
    except NetworkError:
        logger.error("[connect] token endpoint unreachable", exc_info=True)
        return _json_response({"status": "error", "message": "Token endpoint unreachable"}, 502)
    except Exception:
        logger.error("[connect] code exchange failed", exc_info=True)
        return _internal_error()


@bp.route(route="disconnect", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def disconnect(req: func.HttpRequest) -> func.HttpResponse:
    """Clear the stored credential; later syncs report unauthenticated."""
    logger.info("[disconnect] disconnect requested")

    try:
        get_runtime().tokens.disconnect()
        return _json_response({"status": "ok"})

    except Exception:
        logger.error("[disconnect] disconnect failed", exc_info=True)
        return _internal_error()
