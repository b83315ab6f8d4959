"""CORS middleware that answers successful preflights with 204 and no body"""

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response

# Body headers that must not accompany an empty 204
_BODY_HEADERS = {"content-length", "content-type"}


class PreflightCORSMiddleware(CORSMiddleware):
    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            # Disallowed origin/method/header: keep Starlette's 400
            return response

        headers = {
            key: value for key, value in response.headers.items() if key.lower() not in _BODY_HEADERS
        }
        return Response(status_code=204, headers=headers)
