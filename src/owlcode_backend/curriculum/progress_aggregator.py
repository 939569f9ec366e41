import typing

from owlcode_backend.models.course_view_models import (
    CourseStats,
    ProblemView,
    ResolvedModule,
    ResolvedModuleView,
    ResolvedSession,
)
from owlcode_backend.utils.base_types import ProblemId, ProblemStatus


def problem_status(problem_id: ProblemId, completed: typing.AbstractSet[ProblemId]) -> ProblemStatus:
    return "Solved" if problem_id in completed else "Unsolved"


def _with_status(
    problems: tuple[ProblemView, ...],
    completed: typing.AbstractSet[ProblemId],
) -> tuple[ProblemView, ...]:
    return tuple(p.model_copy(update={"status": problem_status(p.problemId, completed)}) for p in problems)


def apply_session_progress(
    session: ResolvedSession,
    completed: typing.AbstractSet[ProblemId],
) -> ResolvedSession:
    """
    Marks each problem Solved/Unsolved and derives isCompleted.
    A session with no assignment problems counts as completed; practice problems never block it.
    """
    assignments = _with_status(session.assignmentProblems, completed)
    practice = _with_status(session.practiceProblems, completed)
    is_completed = all(p.status == "Solved" for p in assignments)
    return session.model_copy(
        update={
            "assignmentProblems": assignments,
            "practiceProblems": practice,
            "isCompleted": is_completed,
        }
    )


def _count_solved(problems: tuple[ProblemView, ...]) -> int:
    return sum(1 for p in problems if p.status == "Solved")


def aggregate_progress(
    modules: typing.Sequence[ResolvedModule],
    completed: typing.AbstractSet[ProblemId],
) -> tuple[list[ResolvedModule], CourseStats]:
    """
    Overlays a trainee's completed problems onto a resolved course and rolls up stats.

    Every session of every unlocked module is counted, so a topic scheduled three times
    contributes three lectures and its problems three times. Locked stubs pass through
    untouched and contribute nothing.
    """
    stats = CourseStats()
    decorated: list[ResolvedModule] = []

    for module in modules:
        if not isinstance(module, ResolvedModuleView):
            decorated.append(module)
            continue

        sessions = tuple(apply_session_progress(s, completed) for s in module.topics)
        for session in sessions:
            stats.totalLectures += 1
            if session.isCompleted:
                stats.completedLectures += 1
            stats.totalAssignments += len(session.assignmentProblems)
            stats.completedAssignments += _count_solved(session.assignmentProblems)
            stats.totalPractice += len(session.practiceProblems)
            stats.completedPractice += _count_solved(session.practiceProblems)

        decorated.append(module.model_copy(update={"topics": sessions}))

    return decorated, stats
