"""HTTP layer for GitLab Portal.

Starlette routes for login, the GitLab views and snippet CRUD. Views
answer with a view name and a JSON payload; HTML rendering is left to
whatever sits in front of this app.
"""

from __future__ import annotations

import contextlib
import functools
from typing import TYPE_CHECKING, Any

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from gitlab_portal.config import AuthScheme, Environment
from gitlab_portal.context import AppContext, build_context
from gitlab_portal.exceptions import NotFoundError, PortalError, ValidationError
from gitlab_portal.gitlab.exceptions import UpstreamError
from gitlab_portal.guards import load_owned_snippet, require_authenticated
from gitlab_portal.logging_config import get_logger
from gitlab_portal.security import AuthError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from starlette.requests import Request

    from gitlab_portal.config import Config
    from gitlab_portal.oauth.session import WebSession
    from gitlab_portal.snippets.models import Snippet

    Handler = Callable[[Request, AppContext, WebSession], Awaitable[Response]]

logger = get_logger(__name__)


# -------------------------------------------------------------------------
# Session plumbing
# -------------------------------------------------------------------------


def _context(request: Request) -> AppContext:
    context: AppContext = request.app.state.context
    return context


async def _load_session(request: Request, context: AppContext) -> WebSession:
    """Return the session named by the cookie, or a new one."""
    session_id = request.cookies.get(context.config.session_cookie_name)
    if session_id:
        session = await context.session_store.get(session_id)
        if session is not None:
            return session
    return await context.session_store.create()


def _set_session_cookie(response: Response, session: WebSession, config: Config) -> None:
    response.set_cookie(
        key=config.session_cookie_name,
        value=session.session_id,
        httponly=True,
        secure=config.environment != Environment.LOCAL,
        samesite="lax",
        max_age=config.session_timeout_seconds,
    )


def with_session(handler: Handler) -> Callable[[Request], Awaitable[Response]]:
    """Wrap a handler so it receives the context and the request's session.

    After the handler returns, the flash notice is written back if the
    request changed it, and the cookie is set. Login state is persisted
    by the login managers themselves. A session that ended while the
    request ran (logout elsewhere) stays ended and gets no cookie.
    Exceptions skip all of this and go to the app's exception handlers.
    """

    @functools.wraps(handler)
    async def endpoint(request: Request) -> Response:
        context = _context(request)
        session = await _load_session(request, context)
        loaded_id, loaded_flash = session.session_id, session.flash

        response = await handler(request, context, session)

        changed = session.session_id != loaded_id or session.flash != loaded_flash
        fields = ("flash",) if changed else ()
        if await context.session_store.update(session, *fields):
            _set_session_cookie(response, session, context.config)
        return response

    return endpoint


def _url(config: Config, path: str) -> str:
    return f"{config.base_url.rstrip('/')}{path}"


def redirect(config: Config, path: str, status_code: int = 303) -> RedirectResponse:
    return RedirectResponse(url=_url(config, path), status_code=status_code)


def render(
    session: WebSession,
    view: str,
    data: dict[str, Any] | None = None,
    status_code: int = 200,
) -> JSONResponse:
    """Hand a view name and its payload to the client.

    The session's flash notice is consumed here.
    """
    notice = session.pop_flash()
    return JSONResponse(
        {
            "view": view,
            "data": data or {},
            "flash": notice.to_dict() if notice else None,
        },
        status_code=status_code,
    )


async def _form(request: Request) -> dict[str, str]:
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


# -------------------------------------------------------------------------
# Home and health
# -------------------------------------------------------------------------


async def health_check(request: Request) -> JSONResponse:
    config = _context(request).config
    return JSONResponse({
        "status": "ok",
        "app_name": config.app_name,
        "environment": config.environment.value,
        "auth_scheme": config.auth_scheme.value,
    })


@with_session
async def home(request: Request, context: AppContext, session: WebSession) -> Response:
    return render(session, "home/index", {
        "authenticated": session.is_authenticated(context.scheme),
        "identity": session.identity(context.scheme),
        "auth_scheme": context.scheme.value,
    })


# -------------------------------------------------------------------------
# GitLab OAuth account routes
# -------------------------------------------------------------------------


@with_session
async def oauth_login(request: Request, context: AppContext, session: WebSession) -> Response:
    """Send the browser to the GitLab authorization page."""
    auth_url = await context.require_oauth_manager().begin_login(session)
    logger.debug("Redirecting session %s to GitLab", session.session_id[:8])
    return RedirectResponse(url=auth_url, status_code=302)


@with_session
async def oauth_callback(request: Request, context: AppContext, session: WebSession) -> Response:
    """Handle the GitLab redirect back to us."""
    code = request.query_params.get("code")
    state = request.query_params.get("state")
    error = request.query_params.get("error")

    if error:
        description = request.query_params.get("error_description", "Unknown error")
        logger.warning("OAuth error from provider: %s - %s", error, description)
        session.set_flash("danger", f"GitLab login was not completed: {description}")
        return redirect(context.config, "/")

    if not code:
        session.set_flash("danger", "GitLab did not return an authorization code.")
        return redirect(context.config, "/")

    try:
        await context.require_oauth_manager().complete_login(session, code, state)
    except AuthError as e:
        logger.warning("GitLab login failed (%s): %s", e.reason, e)
        session.set_flash("danger", e.user_message)
        return redirect(context.config, "/")

    session.set_flash("success", "You have been logged in.")
    return redirect(context.config, "/user/profile")


@with_session
async def logout(request: Request, context: AppContext, session: WebSession) -> Response:
    require_authenticated(session, context.scheme)

    if context.oauth_manager is not None:
        ok = await context.oauth_manager.logout(session)
    else:
        ok = await context.require_local_login().logout(session)

    if ok:
        session.set_flash("success", "You have been logged out.")
    else:
        session.set_flash("danger", "Logging out failed. Please close your browser.")
    return redirect(context.config, "/")


# -------------------------------------------------------------------------
# Local account routes
# -------------------------------------------------------------------------


@with_session
async def local_login_form(request: Request, context: AppContext, session: WebSession) -> Response:
    return render(session, "account/login")


@with_session
async def local_login(request: Request, context: AppContext, session: WebSession) -> Response:
    form = await _form(request)
    try:
        await context.require_local_login().login(
            session, form.get("username", ""), form.get("password", "")
        )
    except AuthError as e:
        session.set_flash("danger", e.user_message)
        return redirect(context.config, "/account/login")

    session.set_flash("success", "You have been logged in.")
    return redirect(context.config, "/snippets")


@with_session
async def register_form(request: Request, context: AppContext, session: WebSession) -> Response:
    return render(session, "account/register")


@with_session
async def register(request: Request, context: AppContext, session: WebSession) -> Response:
    form = await _form(request)
    try:
        await context.require_users().register(form.get("username", ""), form.get("password", ""))
    except ValidationError as e:
        session.set_flash("danger", e.message)
        return redirect(context.config, "/account/register")

    session.set_flash("success", "The user was created successfully.")
    return redirect(context.config, "/account/login")


# -------------------------------------------------------------------------
# GitLab views
# -------------------------------------------------------------------------


async def _gitlab_view(
    context: AppContext,
    session: WebSession,
    view: str,
    fetch: Callable[[str], Awaitable[Any]],
) -> Response:
    """Render a view fed by one GitLab read on behalf of the session."""
    require_authenticated(session, context.scheme)

    try:
        access_token = await context.require_oauth_manager().get_valid_access_token(session)
    except AuthError as e:
        logger.info("Cannot use GitLab token for session %s: %s", session.session_id[:8], e)
        session.set_flash("danger", e.user_message)
        return redirect(context.config, "/account/login")

    view_data = await fetch(access_token)
    return render(session, view, {"view_data": view_data})


@with_session
async def profile(request: Request, context: AppContext, session: WebSession) -> Response:
    return await _gitlab_view(context, session, "user/profile", context.gitlab.get_current_user)


@with_session
async def activities(request: Request, context: AppContext, session: WebSession) -> Response:
    return await _gitlab_view(
        context, session, "user/activities", context.gitlab.fetch_all_activity
    )


@with_session
async def group_projects(request: Request, context: AppContext, session: WebSession) -> Response:
    return await _gitlab_view(
        context, session, "user/group-projects", context.gitlab.list_group_projects
    )


# -------------------------------------------------------------------------
# Snippets
# -------------------------------------------------------------------------


def _snippet_view(snippet: Snippet, identity: str | None) -> dict[str, Any]:
    data = snippet.to_dict()
    data["is_owner"] = identity is not None and identity == snippet.owner
    return data


@with_session
async def snippet_index(request: Request, context: AppContext, session: WebSession) -> Response:
    identity = session.identity(context.scheme)
    snippets = await context.snippets.list_all()
    return render(session, "snippets/index", {
        "snippets": [_snippet_view(s, identity) for s in snippets],
    })


@with_session
async def snippet_show(request: Request, context: AppContext, session: WebSession) -> Response:
    snippet = await context.snippets.find_by_id(request.path_params["id"])
    if snippet is None:
        raise NotFoundError()
    return render(session, "snippets/show", {
        "snippet": _snippet_view(snippet, session.identity(context.scheme)),
    })


@with_session
async def snippet_create_form(request: Request, context: AppContext, session: WebSession) -> Response:
    require_authenticated(session, context.scheme)
    return render(session, "snippets/create")


@with_session
async def snippet_create(request: Request, context: AppContext, session: WebSession) -> Response:
    require_authenticated(session, context.scheme)
    owner = session.identity(context.scheme)
    if owner is None:
        session.set_flash("danger", "Your account has no username to own snippets.")
        return redirect(context.config, "/snippets")

    form = await _form(request)
    try:
        await context.snippets.create(form.get("title", ""), form.get("content", ""), owner)
    except ValidationError as e:
        session.set_flash("danger", e.message)
        return redirect(context.config, "/snippets/create")

    session.set_flash("success", "The snippet was created successfully.")
    return redirect(context.config, "/snippets")


@with_session
async def snippet_update_form(request: Request, context: AppContext, session: WebSession) -> Response:
    require_authenticated(session, context.scheme)
    snippet = await load_owned_snippet(
        context.snippets, request.path_params["id"], session, context.scheme
    )
    return render(session, "snippets/update", {"snippet": snippet.to_dict()})


@with_session
async def snippet_update(request: Request, context: AppContext, session: WebSession) -> Response:
    require_authenticated(session, context.scheme)
    snippet_id = request.path_params["id"]
    await load_owned_snippet(context.snippets, snippet_id, session, context.scheme)

    form = await _form(request)
    try:
        updated = await context.snippets.update(
            snippet_id, form.get("title", ""), form.get("content", "")
        )
    except ValidationError as e:
        session.set_flash("danger", e.message)
        return redirect(context.config, f"/snippets/{snippet_id}/update")

    if updated is None:
        raise NotFoundError()

    session.set_flash("success", "The snippet was updated successfully.")
    return redirect(context.config, "/snippets")


@with_session
async def snippet_delete_form(request: Request, context: AppContext, session: WebSession) -> Response:
    require_authenticated(session, context.scheme)
    snippet = await load_owned_snippet(
        context.snippets, request.path_params["id"], session, context.scheme
    )
    return render(session, "snippets/delete", {"snippet": snippet.to_dict()})


@with_session
async def snippet_delete(request: Request, context: AppContext, session: WebSession) -> Response:
    require_authenticated(session, context.scheme)
    snippet_id = request.path_params["id"]
    await load_owned_snippet(context.snippets, snippet_id, session, context.scheme)

    if not await context.snippets.delete(snippet_id):
        raise NotFoundError()

    session.set_flash("success", "The snippet was deleted successfully.")
    return redirect(context.config, "/snippets")


# -------------------------------------------------------------------------
# Error presentation
# -------------------------------------------------------------------------


async def portal_error_handler(request: Request, exc: PortalError) -> Response:
    return JSONResponse(
        {"error": exc.message, "status": exc.status_code},
        status_code=exc.status_code,
    )


async def http_error_handler(request: Request, exc: HTTPException) -> Response:
    return JSONResponse(
        {"error": exc.detail, "status": exc.status_code},
        status_code=exc.status_code,
        headers=exc.headers,
    )


async def upstream_error_handler(request: Request, exc: UpstreamError) -> Response:
    logger.error("Upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        {
            "error": "GitLab request failed",
            "status": 502,
            "upstream_status": exc.status,
            "upstream_path": exc.path,
        },
        status_code=502,
    )


async def server_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on %s", request.url.path)
    payload: dict[str, Any] = {"error": "Internal Server Error", "status": 500}
    if _context(request).config.environment == Environment.LOCAL:
        payload["detail"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(payload, status_code=500)


# -------------------------------------------------------------------------
# Application factory
# -------------------------------------------------------------------------


def _routes(config: Config) -> list[Route]:
    routes = [
        Route("/health", health_check, methods=["GET"]),
        Route("/", home, methods=["GET"]),
        Route("/account/logout", logout, methods=["POST"]),
        Route("/snippets", snippet_index, methods=["GET"]),
        Route("/snippets/create", snippet_create_form, methods=["GET"]),
        Route("/snippets/create", snippet_create, methods=["POST"]),
        Route("/snippets/{id}/show", snippet_show, methods=["GET"]),
        Route("/snippets/{id}/update", snippet_update_form, methods=["GET"]),
        Route("/snippets/{id}/update", snippet_update, methods=["POST"]),
        Route("/snippets/{id}/delete", snippet_delete_form, methods=["GET"]),
        Route("/snippets/{id}/delete", snippet_delete, methods=["POST"]),
    ]

    if config.auth_scheme == AuthScheme.OAUTH:
        routes += [
            Route("/account/login", oauth_login, methods=["GET"]),
            Route("/account/auth/gitlab", oauth_callback, methods=["GET"]),
            Route("/user/profile", profile, methods=["GET"]),
            Route("/user/activities", activities, methods=["GET"]),
            Route("/user/group-projects", group_projects, methods=["GET"]),
        ]
    else:
        routes += [
            Route("/account/login", local_login_form, methods=["GET"]),
            Route("/account/login", local_login, methods=["POST"]),
            Route("/account/register", register_form, methods=["GET"]),
            Route("/account/register", register, methods=["POST"]),
        ]

    return routes


def create_web_app(config: Config, context: AppContext | None = None) -> Starlette:
    """Create the Starlette application.

    Args:
        config: Application configuration
        context: Prebuilt dependency bundle (built from config if omitted)

    Returns:
        Configured Starlette application
    """
    app_context = context or build_context(config)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        removed = await app_context.session_store.cleanup_expired()
        if removed:
            logger.info("Removed %d expired sessions", removed)
        yield
        await app_context.close()

    app = Starlette(
        routes=_routes(config),
        exception_handlers={
            PortalError: portal_error_handler,
            HTTPException: http_error_handler,
            UpstreamError: upstream_error_handler,
            Exception: server_error_handler,
        },
        lifespan=lifespan,
    )
    app.state.context = app_context

    logger.info(
        "Created web app '%s' (environment: %s, auth: %s)",
        config.app_name,
        config.environment.value,
        config.auth_scheme.value,
    )
    return app


async def run_server(app: Starlette, host: str, port: int) -> None:
    """Run the web app using uvicorn.

    Args:
        app: Starlette ASGI application
        host: Host to bind to
        port: Port to bind to
    """
    import uvicorn

    logger.info("Starting web server on %s:%d", host, port)

    server = uvicorn.Server(
        uvicorn.Config(
            app=app,
            host=host,
            port=port,
            log_config=None,
        )
    )
    await server.serve()
