"""
Rendering of coordinator results for the HTTP layer.
"""
from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.features.permissions.coordinator import AssignmentResult
from app.features.permissions.schemas import (
    AnchorView,
    AssignmentItemError,
    AssignmentResponse,
    PartialAssignmentResponse,
)


def assignment_response(result: AssignmentResult, counterpart_schema: type[BaseModel], noun: str):
    """
    Full success renders as AssignmentResponse (200); any item failure as
    PartialAssignmentResponse with HTTP 400.
    """
    if not result.ok:
        body = PartialAssignmentResponse(
            message=f"Some {noun} assignments failed",
            added_count=result.added_count,
            errors=[
                AssignmentItemError(counterpart_id=error.counterpart_id, reason=error.reason)
                for error in result.errors
            ],
        )
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())

    return AssignmentResponse[counterpart_schema](
        message=f"{result.added_count} {noun}s assigned successfully",
        added_count=result.added_count,
        anchor=AnchorView[counterpart_schema](
            id=result.anchor_id,
            counterparts=[counterpart_schema.model_validate(item) for item in result.counterparts],
        ),
    )
