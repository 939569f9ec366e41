import pydantic

from owlcode_backend.utils.base_types import BatchId, ProblemId, ProblemStatus, UserId


class TraineeProgressModel(pydantic.BaseModel):
    """Completed assignment problems of one trainee within one batch."""

    batchId: BatchId
    traineeId: UserId
    completedAssignments: set[ProblemId] = pydantic.Field(default_factory=set)


class ProblemStatusInputModel(pydantic.BaseModel):
    status: ProblemStatus


class CompletedAssignmentsResponseModel(pydantic.BaseModel):
    completedAssignments: list[ProblemId]
