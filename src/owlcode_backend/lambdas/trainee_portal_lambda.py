import logging
import typing

from pydantic import ValidationError

from owlcode_backend.cloudwatch.metrics import MetricsManager
from owlcode_backend.curriculum.batch_schedule import generate_batch_day_schedule
from owlcode_backend.curriculum.course_view import CourseViewBuilder, TraineeNotEnrolledError
from owlcode_backend.dynamodb.batches_table import BatchesTable
from owlcode_backend.dynamodb.courses_table import CoursesTable
from owlcode_backend.dynamodb.modules_table import ModulesTable
from owlcode_backend.dynamodb.problems_table import ProblemsTable
from owlcode_backend.dynamodb.progress_table import ProgressTable
from owlcode_backend.dynamodb.topic_notes_table import TopicNotesTable
from owlcode_backend.dynamodb.topics_table import TopicsTable
from owlcode_backend.models.batch_models import BatchScheduleResponseModel
from owlcode_backend.models.course_view_models import CourseSummary
from owlcode_backend.models.progress_models import CompletedAssignmentsResponseModel, ProblemStatusInputModel
from owlcode_backend.models.topic_note_models import TopicNoteInputModel
from owlcode_backend.utils.apig_utils import (
    ErrorCode,
    MissingRequestBodyError,
    create_error_response,
    dispatch_by_method,
    format_lambda_response,
    get_method,
    get_path,
    get_path_parts,
    get_role_from_event,
    get_user_id_from_event,
    parse_event_body,
    validation_error_details,
)
from owlcode_backend.utils.aws_env_vars import (
    get_batches_table_name,
    get_courses_table_name,
    get_modules_table_name,
    get_problems_table_name,
    get_progress_table_name,
    get_topic_notes_table_name,
    get_topics_table_name,
)
from owlcode_backend.utils.base_types import BatchId, CourseId, ProblemId, TopicId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class TraineePortalApiHandler:
    def __init__(
        self,
        course_view_builder: CourseViewBuilder,
        courses_table: CoursesTable,
        batches_table: BatchesTable,
        topic_notes_table: TopicNotesTable,
        metrics_manager: MetricsManager,
    ):
        self.course_view_builder = course_view_builder
        self.courses_table = courses_table
        self.batches_table = batches_table
        self.topic_notes_table = topic_notes_table
        self.metrics_manager = metrics_manager

    def _handle_get_course(self, event: dict, trainee_id: UserId, course_id: CourseId) -> dict:
        view = self.course_view_builder.build_trainee_view(course_id, trainee_id)
        if not view:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, f"Course {course_id} not found.", event=event)
        return format_lambda_response(200, view.model_dump(mode="json"), event=event)

    def _handle_put_problem_status(
        self,
        event: dict,
        trainee_id: UserId,
        course_id: CourseId,
        problem_id: ProblemId,
    ) -> dict:
        request = parse_event_body(event, ProblemStatusInputModel)
        try:
            completed = self.course_view_builder.set_problem_status(course_id, trainee_id, problem_id, request.status)
        except TraineeNotEnrolledError as e:
            _LOGGER.warning(str(e))
            return create_error_response(
                ErrorCode.RESOURCE_NOT_FOUND, "You are not enrolled in a batch for this course.", event=event
            )

        self.metrics_manager.put_metric(f"Problem{request.status}", 1)
        response = CompletedAssignmentsResponseModel(completedAssignments=sorted(completed))
        return format_lambda_response(200, response.model_dump(mode="json"), event=event)

    def _handle_get_note(self, event: dict, trainee_id: UserId, topic_id: TopicId) -> dict:
        note = self.topic_notes_table.get_note(trainee_id, topic_id)
        if not note:
            return format_lambda_response(200, {"note": ""}, event=event)
        return format_lambda_response(200, note.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_put_note(self, event: dict, trainee_id: UserId, course_id: CourseId, topic_id: TopicId) -> dict:
        request = parse_event_body(event, TopicNoteInputModel)
        note = self.topic_notes_table.save_note(trainee_id, topic_id, course_id, request.note)
        return format_lambda_response(200, note.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_get_batch_schedule(self, event: dict, trainee_id: UserId, batch_id: BatchId) -> dict:
        batch = self.batches_table.get_batch(batch_id)
        if not batch:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, f"Batch {batch_id} not found.", event=event)
        if trainee_id not in batch.trainees:
            _LOGGER.warning(f"Trainee {trainee_id} requested schedule of batch {batch_id} they are not in")
            return create_error_response(ErrorCode.AUTHORIZATION_FAILED, event=event)

        course = self.courses_table.get_course(batch.courseId)
        if not course:
            return create_error_response(
                ErrorCode.RESOURCE_NOT_FOUND, f"Course {batch.courseId} not found.", event=event
            )

        days = generate_batch_day_schedule(batch.startDate, batch.endDate, course.excludedDays, course.customHolidays)
        response = BatchScheduleResponseModel(batchId=batch.batchId, days=days)
        return format_lambda_response(200, response.model_dump(mode="json"), event=event)

    def _handle_list_courses(self, event: dict) -> dict:
        courses = [
            CourseSummary(
                courseId=course.courseId,
                title=course.title,
                description=course.description,
                startDate=course.startDate,
                endDate=course.endDate,
            ).model_dump(mode="json")
            for course in self.courses_table.list_courses()
        ]
        return format_lambda_response(200, {"courses": courses}, event=event)

    def _handle_get_dashboard(self, event: dict, trainee_id: UserId) -> dict:
        dashboard = self.course_view_builder.build_dashboard(trainee_id)
        return format_lambda_response(200, dashboard.model_dump(mode="json"), event=event)

    def _route(self, event: dict, trainee_id: UserId) -> typing.Optional[dict]:
        parts = get_path_parts(event)
        if len(parts) < 2 or parts[0] != "trainee":
            return None
        resource, rest = parts[1], parts[2:]

        if resource == "dashboard" and not rest:
            return dispatch_by_method(event, {"GET": lambda: self._handle_get_dashboard(event, trainee_id)})

        if resource == "courses":
            if not rest:
                return dispatch_by_method(event, {"GET": lambda: self._handle_list_courses(event)})

            course_id = CourseId(rest[0])
            if len(rest) == 1:
                # Path: /trainee/courses/{courseId}
                return dispatch_by_method(
                    event, {"GET": lambda: self._handle_get_course(event, trainee_id, course_id)}
                )
            if len(rest) == 3 and rest[1] == "problems":
                # Path: /trainee/courses/{courseId}/problems/{problemId}
                problem_id = ProblemId(rest[2])
                return dispatch_by_method(
                    event, {"PUT": lambda: self._handle_put_problem_status(event, trainee_id, course_id, problem_id)}
                )
            if len(rest) == 4 and rest[1] == "topics" and rest[3] == "note":
                # Path: /trainee/courses/{courseId}/topics/{topicId}/note
                topic_id = TopicId(rest[2])
                return dispatch_by_method(
                    event,
                    {
                        "GET": lambda: self._handle_get_note(event, trainee_id, topic_id),
                        "PUT": lambda: self._handle_put_note(event, trainee_id, course_id, topic_id),
                    },
                )

        if resource == "batches" and len(rest) == 2 and rest[1] == "schedule":
            # Path: /trainee/batches/{batchId}/schedule
            batch_id = BatchId(rest[0])
            return dispatch_by_method(
                event, {"GET": lambda: self._handle_get_batch_schedule(event, trainee_id, batch_id)}
            )

        return None

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)
        if get_role_from_event(event) != "trainee":
            _LOGGER.warning(f"User {user_id} without trainee role called the trainee portal")
            return create_error_response(ErrorCode.AUTHORIZATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        _LOGGER.info(f"TraineePortalApiHandler: {http_method} {path} for trainee: {user_id}")

        try:
            response = self._route(event, user_id)
            if response is None:
                _LOGGER.warning(f"Unsupported path for Trainee Portal: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)
            return response

        except MissingRequestBodyError as e:
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)
        except ValidationError as e:
            _LOGGER.error(f"Trainee portal request body validation error: {e.errors()}", exc_info=True)
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=validation_error_details(e), event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in TraineePortalApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def trainee_portal_lambda_handler(event: dict[str, typing.Any], context: typing.Any) -> dict[str, typing.Any]:
    _LOGGER.info(f"trainee_portal_lambda_handler invoked. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager("OwlCode/TraineePortal")

    try:
        courses_table = CoursesTable(get_courses_table_name())
        batches_table = BatchesTable(get_batches_table_name())
        course_view_builder = CourseViewBuilder(
            courses_table=courses_table,
            modules_table=ModulesTable(get_modules_table_name()),
            topics_table=TopicsTable(get_topics_table_name()),
            problems_table=ProblemsTable(get_problems_table_name()),
            batches_table=batches_table,
            progress_table=ProgressTable(get_progress_table_name()),
        )
        api_handler = TraineePortalApiHandler(
            course_view_builder=course_view_builder,
            courses_table=courses_table,
            batches_table=batches_table,
            topic_notes_table=TopicNotesTable(get_topic_notes_table_name()),
            metrics_manager=metrics_manager,
        )
        return api_handler.handle(event)

    except ValueError as ve:
        _LOGGER.critical(f"Configuration error in trainee_portal_lambda_handler: {str(ve)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR, "Server configuration error")
    except Exception as e:
        _LOGGER.critical(f"Error during TraineePortalApiHandler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()
