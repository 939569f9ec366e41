import datetime
import typing

import pydantic

from owlcode_backend.utils.base_types import CourseId, ModuleId, ProblemId, TopicId, UserId

ProblemPlatform = typing.Literal["LeetCode", "CodeForces", "CodeChef", "HackerRank", "GeeksForGeeks", "Other"]
ProblemDifficulty = typing.Literal["Easy", "Medium", "Hard"]
ProblemCategory = typing.Literal["DSA", "SQL", "System Design", "Web Dev", "CS Fundamentals"]


def as_utc_datetime(v: typing.Any) -> typing.Any:
    """
    Normalizes ISO8601 strings and datetimes to timezone-aware UTC datetimes.
    Naive values are taken to already be UTC. Anything else is left for pydantic to reject.
    """
    if isinstance(v, str):
        raw = v[:-1] + "+00:00" if v.endswith("Z") else v
        try:
            v = datetime.datetime.fromisoformat(raw)
        except ValueError:
            raise ValueError(f"'{v}' is not a valid ISO8601 timestamp.")
    elif isinstance(v, datetime.date) and not isinstance(v, datetime.datetime):
        v = datetime.datetime(v.year, v.month, v.day)

    if isinstance(v, datetime.datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=datetime.timezone.utc)
        return v.astimezone(datetime.timezone.utc)
    return v


UtcDatetime = typing.Annotated[datetime.datetime, pydantic.BeforeValidator(as_utc_datetime)]


class ProblemModel(pydantic.BaseModel):
    """A practice or assignment problem hosted on an external judge."""

    problemId: ProblemId
    title: str
    link: str
    platform: ProblemPlatform = "Other"
    difficulty: ProblemDifficulty = "Medium"
    category: ProblemCategory = "DSA"
    tags: list[str] = pydantic.Field(default_factory=list)
    createdBy: typing.Optional[UserId] = None


class TopicModel(pydantic.BaseModel):
    topicId: TopicId
    topicName: str
    description: typing.Optional[str] = None
    trainerNotes: typing.Optional[str] = pydantic.Field(default=None, description="Uploaded notes URL")
    assignmentProblems: list[ProblemId] = pydantic.Field(default_factory=list)
    practiceProblems: list[ProblemId] = pydantic.Field(default_factory=list)
    createdBy: typing.Optional[UserId] = None


class ModuleModel(pydantic.BaseModel):
    moduleId: ModuleId
    title: str
    description: typing.Optional[str] = None
    topics: list[TopicId] = pydantic.Field(default_factory=list)
    # Legacy global lock. Per-course locking lives in CourseModel.lockedModules.
    isLocked: bool = False
    createdBy: typing.Optional[UserId] = None


class TopicScheduleEntryModel(pydantic.BaseModel):
    topicId: TopicId
    date: typing.Optional[UtcDatetime] = None


class ModuleScheduleEntryModel(pydantic.BaseModel):
    moduleId: ModuleId
    testLink: str = ""
    topicSchedules: list[TopicScheduleEntryModel] = pydantic.Field(default_factory=list)


class CourseModel(pydantic.BaseModel):
    """
    Pydantic model representing a course stored in DynamoDB.
    `modules` is the ordered curriculum; `moduleSchedule` holds the sparse topic->date
    assignments per module; `lockedModules` hides modules from trainees of this course.
    """

    courseId: CourseId = pydantic.Field(description="Partition Key")
    title: str
    description: typing.Optional[str] = None
    startDate: UtcDatetime
    endDate: UtcDatetime
    # JavaScript weekday numbering: 0 = Sunday ... 6 = Saturday
    excludedDays: list[int] = pydantic.Field(default_factory=lambda: [0])
    customHolidays: list[UtcDatetime] = pydantic.Field(default_factory=list)
    modules: list[ModuleId] = pydantic.Field(default_factory=list)
    moduleSchedule: list[ModuleScheduleEntryModel] = pydantic.Field(default_factory=list)
    lockedModules: list[ModuleId] = pydantic.Field(default_factory=list)
    createdBy: typing.Optional[UserId] = None

    def get_module_schedule(self, module_id: ModuleId) -> typing.Optional[ModuleScheduleEntryModel]:
        for entry in self.moduleSchedule:
            if entry.moduleId == module_id:
                return entry
        return None


class CourseInputModel(pydantic.BaseModel):
    """Request body for creating or updating course metadata."""

    title: str = pydantic.Field(min_length=1)
    description: typing.Optional[str] = None
    startDate: UtcDatetime
    endDate: UtcDatetime
    excludedDays: list[typing.Annotated[int, pydantic.Field(ge=0, le=6)]] = pydantic.Field(
        default_factory=lambda: [0]
    )
    customHolidays: list[UtcDatetime] = pydantic.Field(default_factory=list)

    model_config = pydantic.ConfigDict(extra="forbid")

    @pydantic.model_validator(mode="after")
    def check_date_order(self) -> "CourseInputModel":
        if self.endDate < self.startDate:
            raise ValueError("endDate must not be before startDate")
        return self


class CourseModulesInputModel(pydantic.BaseModel):
    modules: list[ModuleId]


class ModuleScheduleInputModel(pydantic.BaseModel):
    topicSchedules: list[TopicScheduleEntryModel]
    testLink: typing.Optional[str] = None


class LockedModulesInputModel(pydantic.BaseModel):
    lockedModules: list[ModuleId]


class ProblemInputModel(pydantic.BaseModel):
    title: str = pydantic.Field(min_length=1)
    link: str = pydantic.Field(min_length=1)
    platform: ProblemPlatform = "Other"
    difficulty: ProblemDifficulty = "Medium"
    category: ProblemCategory = "DSA"
    tags: list[str] = pydantic.Field(default_factory=list)

    model_config = pydantic.ConfigDict(extra="forbid")


class TopicInputModel(pydantic.BaseModel):
    topicName: str = pydantic.Field(min_length=1)
    description: typing.Optional[str] = None
    trainerNotes: typing.Optional[str] = None
    assignmentProblems: list[ProblemId] = pydantic.Field(default_factory=list)
    practiceProblems: list[ProblemId] = pydantic.Field(default_factory=list)

    model_config = pydantic.ConfigDict(extra="forbid")


class ModuleInputModel(pydantic.BaseModel):
    title: str = pydantic.Field(min_length=1)
    description: typing.Optional[str] = None
    topics: list[TopicId] = pydantic.Field(default_factory=list)

    model_config = pydantic.ConfigDict(extra="forbid")
