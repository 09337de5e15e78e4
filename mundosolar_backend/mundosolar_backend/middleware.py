import logging

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware:
    """Log API calls that end in a client or server error."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        if request.path.startswith("/api/") and response.status_code >= 400:
            level = logging.ERROR if response.status_code >= 500 else logging.WARNING
            logger.log(
                level,
                "%s %s -> %s",
                request.method,
                request.path,
                response.status_code,
            )

        return response
