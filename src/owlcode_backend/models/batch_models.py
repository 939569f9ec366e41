import datetime
import typing

import pydantic

from owlcode_backend.models.course_models import UtcDatetime
from owlcode_backend.utils.base_types import BatchId, CourseId, UserId


class BatchModel(pydantic.BaseModel):
    """A cohort of trainees taking one course under one trainer."""

    batchId: BatchId = pydantic.Field(description="Partition Key")
    name: str
    courseId: CourseId
    trainerId: typing.Optional[UserId] = None
    trainees: list[UserId] = pydantic.Field(default_factory=list)
    startDate: UtcDatetime
    endDate: UtcDatetime


class BatchInputModel(pydantic.BaseModel):
    name: str = pydantic.Field(min_length=1)
    courseId: CourseId
    trainerId: typing.Optional[UserId] = None
    startDate: UtcDatetime
    endDate: UtcDatetime

    model_config = pydantic.ConfigDict(extra="forbid")


class BatchTraineesInputModel(pydantic.BaseModel):
    traineeIds: list[UserId]


class BatchDayModel(pydantic.BaseModel):
    dayNumber: int = pydantic.Field(..., ge=1)
    date: datetime.date


class BatchScheduleResponseModel(pydantic.BaseModel):
    batchId: BatchId
    days: list[BatchDayModel]
