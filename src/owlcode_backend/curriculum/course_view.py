import logging
import typing

from owlcode_backend.curriculum.progress_aggregator import aggregate_progress
from owlcode_backend.curriculum.schedule_resolver import resolve_course_modules
from owlcode_backend.dynamodb.batches_table import BatchesTable
from owlcode_backend.dynamodb.courses_table import CoursesTable
from owlcode_backend.dynamodb.modules_table import ModulesTable
from owlcode_backend.dynamodb.problems_table import ProblemsTable
from owlcode_backend.dynamodb.progress_table import ProgressTable
from owlcode_backend.dynamodb.topics_table import TopicsTable
from owlcode_backend.models.batch_models import BatchModel
from owlcode_backend.models.course_models import CourseModel
from owlcode_backend.models.course_view_models import (
    CourseSummary,
    DashboardBatch,
    TraineeCourseView,
    TraineeDashboard,
)
from owlcode_backend.utils.base_types import CourseId, ProblemId, ProblemStatus, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class TraineeNotEnrolledError(Exception):
    def __init__(self, course_id: CourseId, trainee_id: UserId):
        self.course_id = course_id
        self.trainee_id = trainee_id
        super().__init__(f"Trainee {trainee_id} is not enrolled in course {course_id}")


class CourseViewBuilder:
    """
    Assembles a trainee's view of a course from the stored course graph and their progress.
    Nothing is cached; every call reads the tables again.
    """

    def __init__(
        self,
        courses_table: CoursesTable,
        modules_table: ModulesTable,
        topics_table: TopicsTable,
        problems_table: ProblemsTable,
        batches_table: BatchesTable,
        progress_table: ProgressTable,
    ):
        self.courses_table = courses_table
        self.modules_table = modules_table
        self.topics_table = topics_table
        self.problems_table = problems_table
        self.batches_table = batches_table
        self.progress_table = progress_table

    def build_trainee_view(self, course_id: CourseId, trainee_id: UserId) -> typing.Optional[TraineeCourseView]:
        """:return: The trainee's course view, or None if the course doesn't exist."""
        course = self.courses_table.get_course(course_id)
        if not course:
            return None
        batch = self.batches_table.find_batch_for_trainee(course_id, trainee_id)
        return self._build_view(course, trainee_id, batch)

    def build_dashboard(self, trainee_id: UserId) -> TraineeDashboard:
        """
        Lists every batch the trainee belongs to with a summary of its course and the trainee's
        stats there. Batches whose course no longer exists are left out.
        """
        entries = []
        for batch in self.batches_table.list_batches_for_trainee(trainee_id):
            course = self.courses_table.get_course(batch.courseId)
            if not course:
                _LOGGER.warning(f"Batch {batch.batchId} points at missing course {batch.courseId}")
                continue
            view = self._build_view(course, trainee_id, batch)
            entries.append(
                DashboardBatch(
                    batchId=batch.batchId,
                    name=batch.name,
                    startDate=batch.startDate,
                    endDate=batch.endDate,
                    course=CourseSummary(
                        courseId=course.courseId,
                        title=course.title,
                        description=course.description,
                        startDate=course.startDate,
                        endDate=course.endDate,
                    ),
                    stats=view.stats,
                )
            )
        return TraineeDashboard(batches=entries)

    def _build_view(
        self,
        course: CourseModel,
        trainee_id: UserId,
        batch: typing.Optional[BatchModel],
    ) -> TraineeCourseView:
        modules_by_id = self.modules_table.get_modules(course.modules)
        topic_ids = [tid for module in modules_by_id.values() for tid in module.topics]
        topics_by_id = self.topics_table.get_topics(topic_ids)
        problem_ids = [
            pid for topic in topics_by_id.values() for pid in topic.assignmentProblems + topic.practiceProblems
        ]
        problems_by_id = self.problems_table.get_problems(problem_ids)

        completed: set[ProblemId] = set()
        if batch:
            completed = self.progress_table.get_completed_problem_ids(batch.batchId, trainee_id)

        resolved = resolve_course_modules(course, modules_by_id, topics_by_id, problems_by_id)
        modules, stats = aggregate_progress(resolved, completed)

        _LOGGER.info(
            f"Built view of course {course.courseId} for trainee {trainee_id}: "
            f"{stats.completedLectures}/{stats.totalLectures} lectures complete"
        )
        return TraineeCourseView(
            courseId=course.courseId,
            title=course.title,
            description=course.description,
            startDate=course.startDate,
            endDate=course.endDate,
            excludedDays=course.excludedDays,
            customHolidays=course.customHolidays,
            batchId=batch.batchId if batch else None,
            modules=modules,
            stats=stats,
        )

    def set_problem_status(
        self,
        course_id: CourseId,
        trainee_id: UserId,
        problem_id: ProblemId,
        status: ProblemStatus,
    ) -> set[ProblemId]:
        """
        Records a trainee solving (or un-solving) a problem within their batch for the course.

        :raises TraineeNotEnrolledError: If the trainee has no batch for the course.
        :return: The trainee's completed problem ids after the update.
        """
        batch = self.batches_table.find_batch_for_trainee(course_id, trainee_id)
        if not batch:
            raise TraineeNotEnrolledError(course_id, trainee_id)
        return self.progress_table.set_problem_status(batch.batchId, trainee_id, problem_id, status)
