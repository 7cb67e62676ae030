"""Request entry point for the tab grouping engine.

Routes ``/health`` and ``/message`` requests to the background services. Run
as a module to start a local development server over an in-memory browser.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from tabgroups import __version__
from tabgroups.utils.logging import configure_logging, get_logger

if TYPE_CHECKING:
    from tabgroups.background import Background

# Configure logging on module load
configure_logging()
logger = get_logger("main")


def _create_response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    """Create a response dictionary.

    Args:
        status_code: HTTP status code.
        body: Response body dictionary.

    Returns:
        Response dictionary.
    """
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
        },
        "body": json.dumps(body),
    }


async def _handle_message(event: dict[str, Any], background: Background) -> dict[str, Any]:
    """Handle a UI message request.

    Args:
        event: Request with a JSON body holding ``action`` and its fields.
        background: Services to dispatch to.

    Returns:
        Response dictionary.
    """
    body = event.get("body") or ""
    try:
        message = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON message", extra={"error": str(e)})
        return _create_response(
            400,
            {
                "error": "invalid_payload",
                "message": f"Invalid JSON: {e}",
            },
        )

    if not isinstance(message, dict) or not isinstance(message.get("action"), str):
        return _create_response(
            400,
            {
                "error": "invalid_payload",
                "message": "Message must be an object with an 'action' field",
            },
        )

    action = message.pop("action")
    try:
        result = await background.messages.dispatch(action, message)
    except Exception as e:
        logger.error(
            "Failed to handle message",
            extra={"action": action, "error": str(e)},
            exc_info=True,
        )
        return _create_response(
            500,
            {
                "error": "internal_error",
                "message": "Failed to handle message",
            },
        )

    if result.get("error") == "unknown_action":
        return _create_response(400, result)
    return _create_response(200, result)


def _handle_health() -> dict[str, Any]:
    """Handle health check request.

    Returns:
        Response dictionary.
    """
    return _create_response(
        200,
        {
            "status": "healthy",
            "version": __version__,
        },
    )


async def handle_request(event: dict[str, Any], background: Background) -> dict[str, Any]:
    """Route a request.

    Args:
        event: Request with ``path``, ``httpMethod`` and an optional ``body``.
        background: Services that handle messages.

    Returns:
        Response dictionary.
    """
    path = event.get("path", "")
    method = event.get("httpMethod", "")

    logger.info(
        "Request received",
        extra={"path": path, "method": method},
    )

    # Route request
    if path == "/health" and method == "GET":
        return _handle_health()
    elif path == "/message" and method == "POST":
        return await _handle_message(event, background)
    else:
        return _create_response(
            404,
            {
                "error": "not_found",
                "message": f"Path not found: {method} {path}",
            },
        )


# For local development
if __name__ == "__main__":
    from contextlib import asynccontextmanager

    import uvicorn
    from starlette.applications import Starlette
    from starlette.requests import Request  # noqa: TC002
    from starlette.responses import JSONResponse
    from starlette.routing import Route

    from tabgroups.background import Background
    from tabgroups.host.memory import InMemoryBrowser
    from tabgroups.utils.config_loader import default_state_path

    browser = InMemoryBrowser()
    background = Background(browser, state_file=default_state_path())

    @asynccontextmanager
    async def lifespan(app: Starlette):  # noqa: ANN202
        """Group the simulated browser's tabs on startup."""
        del app
        await background.start()
        yield

    async def message_route(request: Request) -> JSONResponse:
        """Handle message requests for local development."""
        body = await request.body()
        event = {
            "httpMethod": "POST",
            "path": "/message",
            "body": body.decode(),
        }
        response = await handle_request(event, background)
        await background.events.drain()
        return JSONResponse(
            content=json.loads(response["body"]),
            status_code=response["statusCode"],
        )

    async def open_tab_route(request: Request) -> JSONResponse:
        """Open a simulated tab and process the resulting events."""
        data = await request.json()
        tab = browser.open_tab(data.get("url", ""), pinned=bool(data.get("pinned", False)))
        await background.events.drain()
        return JSONResponse(content={"tab": tab.to_dict(), "groups": browser.group_titles()})

    async def health_route(request: Request) -> JSONResponse:
        """Handle health check requests for local development."""
        del request  # unused but required by Starlette routing
        response = await handle_request({"httpMethod": "GET", "path": "/health"}, background)
        return JSONResponse(
            content=json.loads(response["body"]),
            status_code=response["statusCode"],
        )

    app = Starlette(
        routes=[
            Route("/message", message_route, methods=["POST"]),
            Route("/tabs", open_tab_route, methods=["POST"]),
            Route("/health", health_route, methods=["GET"]),
        ],
        lifespan=lifespan,
    )

    print(f"Starting tabgroups v{__version__} on http://localhost:8000")
    uvicorn.run(app, host="0.0.0.0", port=8000)
