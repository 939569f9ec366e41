import logging
import typing
import uuid

import pydantic
from pydantic import ValidationError

from owlcode_backend.cloudwatch.metrics import MetricsManager
from owlcode_backend.curriculum.course_view import CourseViewBuilder
from owlcode_backend.curriculum.schedule_validator import (
    ScheduleConflictError,
    validate_locked_modules,
    validate_module_schedule,
)
from owlcode_backend.dynamodb.batches_table import BatchesTable
from owlcode_backend.dynamodb.courses_table import CoursesTable
from owlcode_backend.dynamodb.modules_table import ModulesTable
from owlcode_backend.dynamodb.problems_table import ProblemsTable
from owlcode_backend.dynamodb.progress_table import ProgressTable
from owlcode_backend.dynamodb.topics_table import TopicsTable
from owlcode_backend.models.batch_models import BatchInputModel, BatchModel, BatchTraineesInputModel
from owlcode_backend.models.course_models import (
    CourseInputModel,
    CourseModel,
    CourseModulesInputModel,
    LockedModulesInputModel,
    ModuleInputModel,
    ModuleModel,
    ModuleScheduleEntryModel,
    ModuleScheduleInputModel,
    ProblemInputModel,
    ProblemModel,
    TopicInputModel,
    TopicModel,
)
from owlcode_backend.utils.apig_utils import (
    ErrorCode,
    MissingRequestBodyError,
    RouteHandler,
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
    get_topics_table_name,
)
from owlcode_backend.utils.base_types import (
    BatchId,
    CourseId,
    ModuleId,
    ProblemId,
    Role,
    TopicId,
    UserId,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

# Trainers get every GET route (listings, lookups and the trainee-view preview); writes are admin only
_PORTAL_ROLES: tuple[Role, ...] = ("admin", "trainer")


def _new_id() -> str:
    return str(uuid.uuid4())


class AdminPortalApiHandler:
    def __init__(
        self,
        courses_table: CoursesTable,
        modules_table: ModulesTable,
        topics_table: TopicsTable,
        problems_table: ProblemsTable,
        batches_table: BatchesTable,
        progress_table: ProgressTable,
        course_view_builder: CourseViewBuilder,
        metrics_manager: MetricsManager,
    ):
        self.courses_table = courses_table
        self.modules_table = modules_table
        self.topics_table = topics_table
        self.problems_table = problems_table
        self.batches_table = batches_table
        self.progress_table = progress_table
        self.course_view_builder = course_view_builder
        self.metrics_manager = metrics_manager

    def _not_found(self, event: dict, kind: str, item_id: str) -> dict:
        return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, f"{kind} {item_id} not found.", event=event)

    def _item_response(
        self,
        event: dict,
        model: typing.Optional[pydantic.BaseModel],
        kind: str,
        item_id: str,
        status_code: int = 200,
    ) -> dict:
        if model is None:
            return self._not_found(event, kind, item_id)
        return format_lambda_response(status_code, model.model_dump(mode="json", exclude_none=True), event=event)

    def _list_response(self, event: dict, key: str, models: typing.Sequence[pydantic.BaseModel]) -> dict:
        body = {key: [model.model_dump(mode="json", exclude_none=True) for model in models]}
        return format_lambda_response(200, body, event=event)

    def _unknown_ids_response(
        self,
        event: dict,
        kind: str,
        requested: typing.Iterable[str],
        known: typing.Container[str],
    ) -> typing.Optional[dict]:
        unknown = [item_id for item_id in requested if item_id not in known]
        if not unknown:
            return None
        return create_error_response(ErrorCode.VALIDATION_ERROR, f"Unknown {kind}: {', '.join(unknown)}", event=event)

    def _duplicate_response(self, event: dict, kind: str, field: str, value: str) -> dict:
        return create_error_response(
            ErrorCode.VALIDATION_ERROR, f'A {kind} with the {field} "{value}" already exists.', event=event
        )

    # Courses

    def _handle_list_courses(self, event: dict) -> dict:
        return self._list_response(event, "courses", self.courses_table.list_courses())

    def _handle_get_course(self, event: dict, course_id: CourseId) -> dict:
        return self._item_response(event, self.courses_table.get_course(course_id), "Course", course_id)

    def _handle_post_course(self, event: dict, admin_id: UserId) -> dict:
        request = parse_event_body(event, CourseInputModel)
        if self.courses_table.find_course_by_title(request.title):
            return self._duplicate_response(event, "course", "title", request.title)

        course = CourseModel(courseId=CourseId(_new_id()), createdBy=admin_id, **request.model_dump())
        self.courses_table.save_course(course)
        self.metrics_manager.put_metric("CourseCreated", 1)
        return self._item_response(event, course, "Course", course.courseId, status_code=201)

    def _handle_put_course(self, event: dict, course_id: CourseId) -> dict:
        request = parse_event_body(event, CourseInputModel)
        if self.courses_table.find_course_by_title(request.title, exclude_course_id=course_id):
            return self._duplicate_response(event, "course", "title", request.title)

        updated = self.courses_table.update_course_metadata(course_id, request)
        return self._item_response(event, updated, "Course", course_id)

    def _handle_delete_course(self, event: dict, course_id: CourseId) -> dict:
        if not self.courses_table.delete_course(course_id):
            return self._not_found(event, "Course", course_id)
        return format_lambda_response(200, {"courseId": course_id}, event=event)

    def _handle_put_course_modules(self, event: dict, course_id: CourseId) -> dict:
        request = parse_event_body(event, CourseModulesInputModel)
        course = self.courses_table.get_course(course_id)
        if not course:
            return self._not_found(event, "Course", course_id)

        module_ids = list(dict.fromkeys(request.modules))
        error = self._unknown_ids_response(event, "modules", module_ids, self.modules_table.get_modules(module_ids))
        if error:
            return error

        # Schedules and locks of modules taken out of the course go with them
        kept = set(module_ids)
        updated = self.courses_table.update_course_structure(
            course_id,
            module_ids,
            [entry for entry in course.moduleSchedule if entry.moduleId in kept],
            [mid for mid in course.lockedModules if mid in kept],
        )
        return self._item_response(event, updated, "Course", course_id)

    def _handle_put_module_schedule(self, event: dict, course_id: CourseId, module_id: ModuleId) -> dict:
        request = parse_event_body(event, ModuleScheduleInputModel)
        course = self.courses_table.get_course(course_id)
        if not course:
            return self._not_found(event, "Course", course_id)
        module = self.modules_table.get_module(module_id)
        if not module:
            return self._not_found(event, "Module", module_id)

        topics = self.topics_table.get_topics(module.topics)
        topic_names = {tid: topic.topicName for tid, topic in topics.items()}
        validate_module_schedule(course, module, request.topicSchedules, topic_names)

        existing = course.get_module_schedule(module_id)
        if request.testLink is not None:
            test_link = request.testLink
        else:
            test_link = existing.testLink if existing else ""
        new_entry = ModuleScheduleEntryModel(
            moduleId=module_id,
            testLink=test_link,
            topicSchedules=request.topicSchedules,
        )

        module_schedule = [entry for entry in course.moduleSchedule if entry.moduleId != module_id]
        module_schedule.append(new_entry)
        updated = self.courses_table.update_course_structure(
            course_id, course.modules, module_schedule, course.lockedModules
        )
        _LOGGER.info(f"Scheduled {len(request.topicSchedules)} sessions of module {module_id} in course {course_id}")
        return self._item_response(event, updated, "Course", course_id)

    def _handle_put_locked_modules(self, event: dict, course_id: CourseId) -> dict:
        request = parse_event_body(event, LockedModulesInputModel)
        course = self.courses_table.get_course(course_id)
        if not course:
            return self._not_found(event, "Course", course_id)

        validate_locked_modules(course, request.lockedModules)
        updated = self.courses_table.update_course_structure(
            course_id, course.modules, course.moduleSchedule, list(dict.fromkeys(request.lockedModules))
        )
        return self._item_response(event, updated, "Course", course_id)

    def _handle_get_trainee_view(self, event: dict, course_id: CourseId, trainee_id: UserId) -> dict:
        view = self.course_view_builder.build_trainee_view(course_id, trainee_id)
        if not view:
            return self._not_found(event, "Course", course_id)
        return format_lambda_response(200, view.model_dump(mode="json"), event=event)

    # Library: modules, topics and problems

    def _parse_module_input(self, event: dict) -> tuple[ModuleInputModel, typing.Optional[dict]]:
        request = parse_event_body(event, ModuleInputModel)
        request.topics = list(dict.fromkeys(request.topics))
        known = self.topics_table.get_topics(request.topics)
        return request, self._unknown_ids_response(event, "topics", request.topics, known)

    def _handle_post_module(self, event: dict, admin_id: UserId) -> dict:
        request, error = self._parse_module_input(event)
        if error:
            return error
        module = ModuleModel(moduleId=ModuleId(_new_id()), createdBy=admin_id, **request.model_dump())
        self.modules_table.save_module(module)
        return self._item_response(event, module, "Module", module.moduleId, status_code=201)

    def _handle_put_module(self, event: dict, module_id: ModuleId) -> dict:
        request, error = self._parse_module_input(event)
        if error:
            return error
        updated = self.modules_table.update_module(module_id, request)
        return self._item_response(event, updated, "Module", module_id)

    def _handle_delete_module(self, event: dict, module_id: ModuleId) -> dict:
        if not self.modules_table.delete_module(module_id):
            return self._not_found(event, "Module", module_id)
        courses_updated = self.courses_table.remove_module_references(module_id)
        return format_lambda_response(200, {"moduleId": module_id, "coursesUpdated": courses_updated}, event=event)

    def _parse_topic_input(self, event: dict) -> tuple[TopicInputModel, typing.Optional[dict]]:
        request = parse_event_body(event, TopicInputModel)
        request.assignmentProblems = list(dict.fromkeys(request.assignmentProblems))
        request.practiceProblems = list(dict.fromkeys(request.practiceProblems))
        problem_ids = request.assignmentProblems + request.practiceProblems
        known = self.problems_table.get_problems(problem_ids)
        return request, self._unknown_ids_response(event, "problems", list(dict.fromkeys(problem_ids)), known)

    def _handle_post_topic(self, event: dict, admin_id: UserId) -> dict:
        request, error = self._parse_topic_input(event)
        if error:
            return error
        topic = TopicModel(topicId=TopicId(_new_id()), createdBy=admin_id, **request.model_dump())
        self.topics_table.save_topic(topic)
        return self._item_response(event, topic, "Topic", topic.topicId, status_code=201)

    def _handle_put_topic(self, event: dict, topic_id: TopicId) -> dict:
        request, error = self._parse_topic_input(event)
        if error:
            return error
        updated = self.topics_table.update_topic(topic_id, request)
        return self._item_response(event, updated, "Topic", topic_id)

    def _handle_delete_topic(self, event: dict, topic_id: TopicId) -> dict:
        if not self.topics_table.delete_topic(topic_id):
            return self._not_found(event, "Topic", topic_id)
        modules_updated = self.modules_table.remove_topic_references(topic_id)
        return format_lambda_response(200, {"topicId": topic_id, "modulesUpdated": modules_updated}, event=event)

    def _handle_post_problem(self, event: dict, admin_id: UserId) -> dict:
        request = parse_event_body(event, ProblemInputModel)
        if self.problems_table.find_problem_by_link(request.link):
            return self._duplicate_response(event, "problem", "link", request.link)
        problem = ProblemModel(problemId=ProblemId(_new_id()), createdBy=admin_id, **request.model_dump())
        self.problems_table.save_problem(problem)
        return self._item_response(event, problem, "Problem", problem.problemId, status_code=201)

    def _handle_put_problem(self, event: dict, problem_id: ProblemId) -> dict:
        request = parse_event_body(event, ProblemInputModel)
        if self.problems_table.find_problem_by_link(request.link, exclude_problem_id=problem_id):
            return self._duplicate_response(event, "problem", "link", request.link)
        updated = self.problems_table.update_problem(problem_id, request)
        return self._item_response(event, updated, "Problem", problem_id)

    def _handle_delete_problem(self, event: dict, problem_id: ProblemId) -> dict:
        if not self.problems_table.delete_problem(problem_id):
            return self._not_found(event, "Problem", problem_id)
        topics_updated = self.topics_table.remove_problem_references(problem_id)
        return format_lambda_response(200, {"problemId": problem_id, "topicsUpdated": topics_updated}, event=event)

    # Batches

    def _handle_post_batch(self, event: dict) -> dict:
        request = parse_event_body(event, BatchInputModel)
        if self.batches_table.find_batch_by_name(request.name):
            return self._duplicate_response(event, "batch", "name", request.name)
        if not self.courses_table.get_course(request.courseId):
            return self._not_found(event, "Course", request.courseId)

        batch = BatchModel(batchId=BatchId(_new_id()), **request.model_dump())
        self.batches_table.save_batch(batch)
        return self._item_response(event, batch, "Batch", batch.batchId, status_code=201)

    def _handle_put_batch(self, event: dict, batch_id: BatchId) -> dict:
        request = parse_event_body(event, BatchInputModel)
        if self.batches_table.find_batch_by_name(request.name, exclude_batch_id=batch_id):
            return self._duplicate_response(event, "batch", "name", request.name)
        if not self.courses_table.get_course(request.courseId):
            return self._not_found(event, "Course", request.courseId)

        updated = self.batches_table.update_batch(batch_id, request)
        return self._item_response(event, updated, "Batch", batch_id)

    def _handle_delete_batch(self, event: dict, batch_id: BatchId) -> dict:
        if not self.batches_table.delete_batch(batch_id):
            return self._not_found(event, "Batch", batch_id)
        progress_deleted = self.progress_table.delete_batch_progress(batch_id)
        return format_lambda_response(200, {"batchId": batch_id, "progressDeleted": progress_deleted}, event=event)

    def _handle_put_batch_trainees(self, event: dict, batch_id: BatchId) -> dict:
        request = parse_event_body(event, BatchTraineesInputModel)
        batch = self.batches_table.set_trainees(batch_id, request.traineeIds)
        return self._item_response(event, batch, "Batch", batch_id)

    def _match_route(self, event: dict, user_id: UserId) -> typing.Optional[dict[str, RouteHandler]]:
        """:return: The handlers of the matched path keyed by HTTP method, or None for an unknown path."""
        parts = get_path_parts(event)
        if len(parts) < 2 or parts[0] != "admin":
            return None
        resource, rest = parts[1], parts[2:]

        if resource == "courses":
            if not rest:
                return {
                    "GET": lambda: self._handle_list_courses(event),
                    "POST": lambda: self._handle_post_course(event, user_id),
                }
            course_id = CourseId(rest[0])
            if len(rest) == 1:
                return {
                    "GET": lambda: self._handle_get_course(event, course_id),
                    "PUT": lambda: self._handle_put_course(event, course_id),
                    "DELETE": lambda: self._handle_delete_course(event, course_id),
                }
            if rest[1:] == ["modules"]:
                return {"PUT": lambda: self._handle_put_course_modules(event, course_id)}
            if rest[1:] == ["locked-modules"]:
                return {"PUT": lambda: self._handle_put_locked_modules(event, course_id)}
            if len(rest) == 4 and rest[1] == "modules" and rest[3] == "schedule":
                # Path: /admin/courses/{courseId}/modules/{moduleId}/schedule
                module_id = ModuleId(rest[2])
                return {"PUT": lambda: self._handle_put_module_schedule(event, course_id, module_id)}
            if len(rest) == 4 and rest[1] == "trainees" and rest[3] == "view":
                # Path: /admin/courses/{courseId}/trainees/{traineeId}/view
                trainee_id = UserId(rest[2])
                return {"GET": lambda: self._handle_get_trainee_view(event, course_id, trainee_id)}
            return None

        if resource == "modules":
            if not rest:
                return {
                    "GET": lambda: self._list_response(event, "modules", self.modules_table.list_modules()),
                    "POST": lambda: self._handle_post_module(event, user_id),
                }
            if len(rest) == 1:
                module_id = ModuleId(rest[0])
                return {
                    "GET": lambda: self._item_response(
                        event, self.modules_table.get_module(module_id), "Module", module_id
                    ),
                    "PUT": lambda: self._handle_put_module(event, module_id),
                    "DELETE": lambda: self._handle_delete_module(event, module_id),
                }
            return None

        if resource == "topics":
            if not rest:
                return {
                    "GET": lambda: self._list_response(event, "topics", self.topics_table.list_topics()),
                    "POST": lambda: self._handle_post_topic(event, user_id),
                }
            if len(rest) == 1:
                topic_id = TopicId(rest[0])
                return {
                    "GET": lambda: self._item_response(event, self.topics_table.get_topic(topic_id), "Topic", topic_id),
                    "PUT": lambda: self._handle_put_topic(event, topic_id),
                    "DELETE": lambda: self._handle_delete_topic(event, topic_id),
                }
            return None

        if resource == "problems":
            if not rest:
                return {
                    "GET": lambda: self._list_response(event, "problems", self.problems_table.list_problems()),
                    "POST": lambda: self._handle_post_problem(event, user_id),
                }
            if len(rest) == 1:
                problem_id = ProblemId(rest[0])
                return {
                    "GET": lambda: self._item_response(
                        event, self.problems_table.get_problems([problem_id]).get(problem_id), "Problem", problem_id
                    ),
                    "PUT": lambda: self._handle_put_problem(event, problem_id),
                    "DELETE": lambda: self._handle_delete_problem(event, problem_id),
                }
            return None

        if resource == "batches":
            if not rest:
                return {
                    "GET": lambda: self._list_response(event, "batches", self.batches_table.list_batches()),
                    "POST": lambda: self._handle_post_batch(event),
                }
            batch_id = BatchId(rest[0])
            if len(rest) == 1:
                return {
                    "GET": lambda: self._item_response(
                        event, self.batches_table.get_batch(batch_id), "Batch", batch_id
                    ),
                    "PUT": lambda: self._handle_put_batch(event, batch_id),
                    "DELETE": lambda: self._handle_delete_batch(event, batch_id),
                }
            if rest[1:] == ["trainees"]:
                return {"PUT": lambda: self._handle_put_batch_trainees(event, batch_id)}
            return None

        return None

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)
        role = get_role_from_event(event)
        if role not in _PORTAL_ROLES:
            _LOGGER.warning(f"User {user_id} with role {role} called the admin portal")
            return create_error_response(ErrorCode.AUTHORIZATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        _LOGGER.info(f"AdminPortalApiHandler: {http_method} {path} for {role}: {user_id}")

        try:
            handlers = self._match_route(event, user_id)
            if handlers is None:
                _LOGGER.warning(f"Unsupported path for Admin Portal: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)
            if role != "admin" and http_method in handlers and http_method != "GET":
                _LOGGER.warning(f"User {user_id} with role {role} tried {http_method} {path}")
                return create_error_response(ErrorCode.AUTHORIZATION_FAILED, event=event)
            return dispatch_by_method(event, handlers)

        except MissingRequestBodyError as e:
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)
        except ValidationError as e:
            _LOGGER.error(f"Admin portal request body validation error: {e.errors()}", exc_info=True)
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=validation_error_details(e), event=event)
        except ScheduleConflictError as e:
            _LOGGER.info(f"Rejected schedule change: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in AdminPortalApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def admin_portal_lambda_handler(event: dict[str, typing.Any], context: typing.Any) -> dict[str, typing.Any]:
    _LOGGER.info(f"admin_portal_lambda_handler invoked. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager("OwlCode/AdminPortal")

    try:
        courses_table = CoursesTable(get_courses_table_name())
        modules_table = ModulesTable(get_modules_table_name())
        topics_table = TopicsTable(get_topics_table_name())
        problems_table = ProblemsTable(get_problems_table_name())
        batches_table = BatchesTable(get_batches_table_name())
        progress_table = ProgressTable(get_progress_table_name())
        course_view_builder = CourseViewBuilder(
            courses_table=courses_table,
            modules_table=modules_table,
            topics_table=topics_table,
            problems_table=problems_table,
            batches_table=batches_table,
            progress_table=progress_table,
        )
        api_handler = AdminPortalApiHandler(
            courses_table=courses_table,
            modules_table=modules_table,
            topics_table=topics_table,
            problems_table=problems_table,
            batches_table=batches_table,
            progress_table=progress_table,
            course_view_builder=course_view_builder,
            metrics_manager=metrics_manager,
        )
        return api_handler.handle(event)

    except ValueError as ve:
        _LOGGER.critical(f"Configuration error in admin_portal_lambda_handler: {str(ve)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR, "Server configuration error")
    except Exception as e:
        _LOGGER.critical(f"Error during AdminPortalApiHandler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()
