import collections
import logging
import typing

from owlcode_backend.models.course_models import (
    CourseModel,
    ModuleModel,
    ModuleScheduleEntryModel,
    ProblemModel,
    TopicModel,
    TopicScheduleEntryModel,
)
from owlcode_backend.models.course_view_models import (
    LockedModuleStub,
    ProblemView,
    ResolvedModule,
    ResolvedModuleView,
    ResolvedSession,
)
from owlcode_backend.utils.base_types import ModuleId, ProblemId, TopicId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


def _problem_views(
    problem_ids: list[ProblemId],
    problems_by_id: typing.Mapping[ProblemId, ProblemModel],
) -> tuple[ProblemView, ...]:
    # Problems deleted from the library simply drop out of the topic.
    return tuple(
        ProblemView.model_validate(problems_by_id[pid].model_dump())
        for pid in problem_ids
        if pid in problems_by_id
    )


def _make_session(
    topic: TopicModel,
    problems_by_id: typing.Mapping[ProblemId, ProblemModel],
    topic_name: str,
    schedule_entry: typing.Optional[TopicScheduleEntryModel],
    day_number: int,
) -> ResolvedSession:
    return ResolvedSession(
        topicId=topic.topicId,
        topicName=topic_name,
        description=topic.description,
        trainerNotes=topic.trainerNotes,
        date=schedule_entry.date if schedule_entry else None,
        dayNumber=day_number,
        assignmentProblems=_problem_views(topic.assignmentProblems, problems_by_id),
        practiceProblems=_problem_views(topic.practiceProblems, problems_by_id),
    )


def order_module_sessions(
    module: ModuleModel,
    schedule: typing.Optional[ModuleScheduleEntryModel],
    topics_by_id: typing.Mapping[TopicId, TopicModel],
) -> list[tuple[TopicModel, str, typing.Optional[TopicScheduleEntryModel]]]:
    """
    Orders one module's sessions without numbering them.

    Scheduled sessions come first sorted by date (ties keep schedule order), followed by
    the module's remaining topics in their original order. Schedule entries with no date
    or whose topic is no longer part of the module are ignored.

    :return: (topic, display name, schedule entry or None) per session.
    """
    member_topics = {tid: topics_by_id[tid] for tid in module.topics if tid in topics_by_id}

    valid_entries: list[TopicScheduleEntryModel] = []
    if schedule:
        for entry in schedule.topicSchedules:
            if entry.date is None or entry.topicId not in member_topics:
                _LOGGER.debug(f"Ignoring schedule entry {entry.topicId} in module {module.moduleId}")
                continue
            valid_entries.append(entry)

    sessions_per_topic = collections.Counter(entry.topicId for entry in valid_entries)
    part_counters: collections.Counter[TopicId] = collections.Counter()

    scheduled: list[tuple[TopicModel, str, typing.Optional[TopicScheduleEntryModel]]] = []
    for entry in valid_entries:
        topic = member_topics[entry.topicId]
        name = topic.topicName
        if sessions_per_topic[entry.topicId] > 1:
            part_counters[entry.topicId] += 1
            name = f"{topic.topicName}: Part {part_counters[entry.topicId]}"
        scheduled.append((topic, name, entry))

    scheduled.sort(key=lambda session: session[2].date)  # type: ignore[union-attr]

    unscheduled: list[tuple[TopicModel, str, typing.Optional[TopicScheduleEntryModel]]] = [
        (topic, topic.topicName, None) for tid, topic in member_topics.items() if tid not in sessions_per_topic
    ]
    return scheduled + unscheduled


def resolve_module(
    module: ModuleModel,
    schedule: typing.Optional[ModuleScheduleEntryModel],
    topics_by_id: typing.Mapping[TopicId, TopicModel],
    problems_by_id: typing.Mapping[ProblemId, ProblemModel],
    first_day_number: int,
) -> tuple[ResolvedModuleView, int]:
    """
    Resolves an unlocked module, numbering its sessions from `first_day_number`.

    :return: The resolved module and the day number the next module should start from.
    """
    day_number = first_day_number
    sessions: list[ResolvedSession] = []
    for topic, name, entry in order_module_sessions(module, schedule, topics_by_id):
        sessions.append(_make_session(topic, problems_by_id, name, entry, day_number))
        day_number += 1

    resolved = ResolvedModuleView(
        moduleId=module.moduleId,
        title=module.title,
        description=module.description,
        testLink=schedule.testLink if schedule else "",
        topics=tuple(sessions),
    )
    return resolved, day_number


def resolve_course_modules(
    course: CourseModel,
    modules_by_id: typing.Mapping[ModuleId, ModuleModel],
    topics_by_id: typing.Mapping[TopicId, TopicModel],
    problems_by_id: typing.Mapping[ProblemId, ProblemModel],
    locked_module_ids: typing.Optional[typing.Collection[ModuleId]] = None,
) -> list[ResolvedModule]:
    """
    Builds the ordered, day-numbered curriculum of a course.

    Day numbers run across the whole course in `course.modules` order, one per session,
    starting at 1. Locked modules are emitted as stubs and take no day numbers.
    Modules referenced by the course but missing from `modules_by_id` are skipped.
    """
    locked = set(course.lockedModules if locked_module_ids is None else locked_module_ids)

    resolved_modules: list[ResolvedModule] = []
    next_day_number = 1
    for module_id in course.modules:
        module = modules_by_id.get(module_id)
        if module is None:
            _LOGGER.warning(f"Course {course.courseId} references missing module {module_id}")
            continue

        if module_id in locked:
            resolved_modules.append(
                LockedModuleStub(moduleId=module.moduleId, title=module.title, description=module.description)
            )
            continue

        resolved, next_day_number = resolve_module(
            module,
            course.get_module_schedule(module_id),
            topics_by_id,
            problems_by_id,
            next_day_number,
        )
        resolved_modules.append(resolved)

    _LOGGER.info(f"Resolved course {course.courseId}: {next_day_number - 1} sessions in {len(resolved_modules)} modules")
    return resolved_modules
