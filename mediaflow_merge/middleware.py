from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from mediaflow_merge.configs import settings


class UIAccessControlMiddleware(BaseHTTPMiddleware):
    """Middleware that controls access to UI components based on settings."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        # Block access to the merge form
        if settings.disable_home_page and (path == "/" or path == "/index.html"):
            return JSONResponse({"detail": "Not Found"}, status_code=404)

        # Block access to API docs
        if settings.disable_docs and (path == "/docs" or path == "/redoc" or path.startswith("/openapi")):
            return JSONResponse({"detail": "Not Found"}, status_code=404)

        return await call_next(request)
