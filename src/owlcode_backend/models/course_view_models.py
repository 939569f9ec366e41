import datetime
import typing

import pydantic

from owlcode_backend.models.course_models import ProblemModel
from owlcode_backend.utils.base_types import BatchId, CourseId, ModuleId, ProblemStatus, TopicId

_FROZEN = pydantic.ConfigDict(frozen=True)


class ProblemView(ProblemModel):
    """A problem as shown to a trainee. `status` is None until progress is overlaid."""

    model_config = _FROZEN

    status: typing.Optional[ProblemStatus] = None


class ResolvedSession(pydantic.BaseModel):
    """
    One occurrence of a topic in a module's resolved view.
    A topic scheduled on several dates yields one session per date.
    """

    model_config = _FROZEN

    topicId: TopicId
    topicName: str
    description: typing.Optional[str] = None
    trainerNotes: typing.Optional[str] = None
    date: typing.Optional[datetime.datetime] = None
    dayNumber: int = pydantic.Field(..., ge=1)
    assignmentProblems: tuple[ProblemView, ...] = ()
    practiceProblems: tuple[ProblemView, ...] = ()
    isCompleted: typing.Optional[bool] = None


class LockedModuleStub(pydantic.BaseModel):
    model_config = _FROZEN

    kind: typing.Literal["locked"] = "locked"
    moduleId: ModuleId
    title: str
    description: typing.Optional[str] = None
    isLocked: typing.Literal[True] = True
    topics: tuple[ResolvedSession, ...] = ()


class ResolvedModuleView(pydantic.BaseModel):
    model_config = _FROZEN

    kind: typing.Literal["resolved"] = "resolved"
    moduleId: ModuleId
    title: str
    description: typing.Optional[str] = None
    isLocked: typing.Literal[False] = False
    testLink: str = ""
    topics: tuple[ResolvedSession, ...] = ()


ResolvedModule = typing.Annotated[
    typing.Union[LockedModuleStub, ResolvedModuleView],
    pydantic.Field(discriminator="kind"),
]


class CourseStats(pydantic.BaseModel):
    completedLectures: int = 0
    totalLectures: int = 0
    completedAssignments: int = 0
    totalAssignments: int = 0
    completedPractice: int = 0
    totalPractice: int = 0


class TraineeCourseView(pydantic.BaseModel):
    """
    Trainee-facing read model of a course. Internal scheduling data
    (moduleSchedule, lockedModules) is deliberately absent.
    """

    courseId: CourseId
    title: str
    description: typing.Optional[str] = None
    startDate: datetime.datetime
    endDate: datetime.datetime
    excludedDays: list[int]
    customHolidays: list[datetime.datetime]
    batchId: typing.Optional[BatchId] = None
    modules: list[ResolvedModule]
    stats: CourseStats


class CourseSummary(pydantic.BaseModel):
    courseId: CourseId
    title: str
    description: typing.Optional[str] = None
    startDate: datetime.datetime
    endDate: datetime.datetime


class DashboardBatch(pydantic.BaseModel):
    """One batch the trainee belongs to, with their standing in its course."""

    batchId: BatchId
    name: str
    startDate: datetime.datetime
    endDate: datetime.datetime
    course: CourseSummary
    stats: CourseStats


class TraineeDashboard(pydantic.BaseModel):
    batches: list[DashboardBatch]
