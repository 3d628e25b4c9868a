from __future__ import annotations

import logging
import time

from fastapi.routing import APIRoute
from starlette.requests import Request

from app.config import settings
from app.request_context import current_endpoint


logger = logging.getLogger('app.route')


class EndpointNameRoute(APIRoute):
    def get_route_handler(self):
        original_handler = super().get_route_handler()

        async def custom_handler(request: Request):
            endpoint_label = f"{request.method} {self.path}"
            token = current_endpoint.set(endpoint_label)
            started = time.perf_counter()
            try:
                return await original_handler(request)
            finally:
                duration_ms = (time.perf_counter() - started) * 1000.0
                if duration_ms >= settings.metrics_slow_ms:
                    logger.warning('slow_endpoint endpoint=%s duration_ms=%.2f', endpoint_label, duration_ms)
                current_endpoint.reset(token)

        return custom_handler
