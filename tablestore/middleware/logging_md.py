import uuid
import time
from fastapi import Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from tablestore.logging.logger import _current_request

TRACE_HEADER = "X-Trace-ID"
ACTOR_HEADER = "X-Actor"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a trace id per request and exposes the calling actor to the unit of work."""

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER, str(uuid.uuid4()))
        request.state.trace_id = trace_id
        # Stamped into created_by / modified_by of entities written by this request
        request.state.actor = request.headers.get(ACTOR_HEADER)
        token = _current_request.set(request)

        with logger.contextualize(trace_id=trace_id):
            start_time = time.time()
            logger.info(
                f"Request Started | Method: {request.method} | Path: {request.url.path} | "
                f"Actor: {request.state.actor or 'anonymous'}"
            )

            try:
                response = await call_next(request)
                process_time = (time.time() - start_time) * 1000
                logger.info(
                    f"Request Finished | Status: {response.status_code} | "
                    f"Duration: {process_time:.2f}ms"
                )
                response.headers[TRACE_HEADER] = trace_id
                return response

            except Exception as e:
                process_time = (time.time() - start_time) * 1000
                logger.error(
                    f"Request Failed | Error: {str(e)} | Duration: {process_time:.2f}ms"
                )
                raise
            finally:
                _current_request.reset(token)
