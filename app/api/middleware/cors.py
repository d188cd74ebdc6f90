"""
CORS middleware.
Owns: Cross-origin headers and empty-bodied preflight responses.
"""

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware as StarletteCORSMiddleware
from starlette.responses import Response

_BODY_HEADERS = frozenset({"content-length", "content-type"})


class CORSMiddleware(StarletteCORSMiddleware):
    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response

        # Starlette answers an accepted preflight with a plain "OK" body
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in _BODY_HEADERS
        }
        return Response(status_code=200, headers=headers)
