import datetime
import logging
import typing

from owlcode_backend.models.course_models import CourseModel, ModuleModel, TopicScheduleEntryModel
from owlcode_backend.utils.base_types import ModuleId, TopicId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ScheduleConflictError(ValueError):
    pass


def _fmt(day: datetime.date) -> str:
    return day.strftime("%d %b %Y")


def validate_module_schedule(
    course: CourseModel,
    module: ModuleModel,
    topic_schedules: list[TopicScheduleEntryModel],
    topic_names: typing.Optional[typing.Mapping[TopicId, str]] = None,
) -> None:
    """
    Checks a module's topic schedule before it is written to the course.

    Dates are compared by calendar day. Entries without a date are allowed and mean
    "not scheduled".

    :raises ScheduleConflictError: If the module isn't in the course, an entry names a
        topic outside the module, a date falls outside the course's start/end dates, or
        two entries anywhere in the course share a date.
    """
    names = topic_names or {}

    def label(topic_id: TopicId) -> str:
        return names.get(topic_id, topic_id)

    if module.moduleId not in course.modules:
        raise ScheduleConflictError(f"Module '{module.title}' is not part of course '{course.title}'.")

    member_topics = set(module.topics)
    course_start = course.startDate.date()
    course_end = course.endDate.date()

    # Dates already taken by the other modules of this course
    taken: dict[datetime.date, str] = {}
    for other in course.moduleSchedule:
        if other.moduleId == module.moduleId:
            continue
        for entry in other.topicSchedules:
            if entry.date is not None:
                taken[entry.date.date()] = label(entry.topicId)

    for entry in topic_schedules:
        if entry.topicId not in member_topics:
            raise ScheduleConflictError(f"Topic '{label(entry.topicId)}' does not belong to module '{module.title}'.")

        if entry.date is None:
            continue

        day = entry.date.date()
        if day < course_start or day > course_end:
            raise ScheduleConflictError(
                f"{label(entry.topicId)}: Date must be between {_fmt(course_start)} and {_fmt(course_end)}"
            )

        if day in taken:
            raise ScheduleConflictError(
                f'Multiple topics assigned to {_fmt(day)}: "{taken[day]}" and "{label(entry.topicId)}"'
            )
        taken[day] = label(entry.topicId)

    _LOGGER.debug(f"Schedule for module {module.moduleId} in course {course.courseId} is valid")


def validate_locked_modules(course: CourseModel, locked_module_ids: list[ModuleId]) -> None:
    """:raises ScheduleConflictError: If a locked module is not part of the course."""
    unknown = [mid for mid in locked_module_ids if mid not in course.modules]
    if unknown:
        raise ScheduleConflictError(f"Cannot lock modules that are not in the course: {', '.join(unknown)}")
