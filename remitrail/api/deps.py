"""
Reusable FastAPI dependencies.

Dependencies:
  - get_orchestrator — the PaymentOrchestrator wired at startup (app.state)
  - get_sender_id    — caller identity from the ``X-Sender-Id`` header
"""

from fastapi import Header, HTTPException, Request, status

from remitrail.errors import PaymentError
from remitrail.services.orchestrator import PaymentOrchestrator


def get_orchestrator(request: Request) -> PaymentOrchestrator:
    return request.app.state.orchestrator


async def get_sender_id(
    x_sender_id: str = Header(..., description="Identifier of the sending customer"),
) -> str:
    sender_id = x_sender_id.strip()
    if not sender_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing sender identity",
        )
    return sender_id


def http_error(exc: PaymentError) -> HTTPException:
    """Translate an orchestration error into the HTTP error it maps to."""
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": exc.message},
    )
