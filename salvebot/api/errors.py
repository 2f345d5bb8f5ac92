"""Exception handlers translating service errors into JSON error bodies."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from salvebot.errors import AccessDenied, DocumentRejected, RetrievalFailure

_ACCESS_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "server_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def access_denied_handler(request: Request, exc: AccessDenied) -> JSONResponse:
    status_code = _ACCESS_STATUS.get(exc.status_category, status.HTTP_403_FORBIDDEN)
    return JSONResponse(status_code=status_code, content={"error": exc.reason})


async def retrieval_failure_handler(request: Request, exc: RetrievalFailure) -> JSONResponse:
    # Stage and cause stay in the logs; clients get a generic message
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Failed to process message"},
    )


async def document_rejected_handler(request: Request, exc: DocumentRejected) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for the service error taxonomy."""
    app.add_exception_handler(AccessDenied, access_denied_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RetrievalFailure, retrieval_failure_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DocumentRejected, document_rejected_handler)  # type: ignore[arg-type]
