import json
import typing
from unittest.mock import Mock

import pytest

from owlcode_backend.lambdas.admin_portal_lambda import AdminPortalApiHandler
from owlcode_backend.models.batch_models import BatchModel

from test_utils.authorizer import add_authorizer_info
from test_utils.curriculum_factory import day, make_course, make_module, make_problem, make_schedule, make_topic

ADMIN_ID = "admin-1"

COURSE_BODY = {
    "title": "Full Stack Bootcamp",
    "startDate": "2025-03-01T00:00:00Z",
    "endDate": "2025-03-31T00:00:00Z",
}


def create_admin_event(
    method: str,
    path: str,
    body: typing.Optional[dict] = None,
    role: str = "admin",
) -> dict:
    event = {
        "requestContext": {"http": {"method": method, "path": path}},
        "body": json.dumps(body) if body is not None else None,
    }
    add_authorizer_info(event, ADMIN_ID, role)
    return event


class Tables:
    def __init__(self) -> None:
        self.courses = Mock()
        self.modules = Mock()
        self.topics = Mock()
        self.problems = Mock()
        self.batches = Mock()
        self.progress = Mock()
        self.course_view_builder = Mock()
        self.metrics_manager = Mock()

    def handler(self) -> AdminPortalApiHandler:
        return AdminPortalApiHandler(
            courses_table=self.courses,
            modules_table=self.modules,
            topics_table=self.topics,
            problems_table=self.problems,
            batches_table=self.batches,
            progress_table=self.progress,
            course_view_builder=self.course_view_builder,
            metrics_manager=self.metrics_manager,
        )


@pytest.fixture
def tables() -> Tables:
    return Tables()


def _body(response: dict) -> typing.Any:
    return json.loads(response["body"])


@pytest.mark.parametrize("role", ["trainee", "trainer"])
def test_admin_routes_need_admin_role(tables: Tables, role: str):
    response = tables.handler().handle(create_admin_event("POST", "/admin/courses", COURSE_BODY, role=role))

    assert response["statusCode"] == 403
    tables.courses.save_course.assert_not_called()


def test_unknown_admin_route(tables: Tables):
    response = tables.handler().handle(create_admin_event("GET", "/admin/courses/c1/students"))

    assert response["statusCode"] == 404


def test_known_admin_route_with_wrong_method(tables: Tables):
    response = tables.handler().handle(create_admin_event("PATCH", "/admin/courses/c1"))

    assert response["statusCode"] == 405
    assert response["headers"]["Allow"] == "DELETE, GET, PUT"


def test_create_course(tables: Tables):
    tables.courses.find_course_by_title.return_value = None

    response = tables.handler().handle(create_admin_event("POST", "/admin/courses", COURSE_BODY))

    assert response["statusCode"] == 201
    body = _body(response)
    assert body["title"] == "Full Stack Bootcamp"
    assert body["excludedDays"] == [0]
    assert body["createdBy"] == ADMIN_ID
    saved = tables.courses.save_course.call_args.args[0]
    assert saved.courseId == body["courseId"]
    tables.metrics_manager.put_metric.assert_called_once_with("CourseCreated", 1)


def test_create_course_duplicate_title(tables: Tables):
    tables.courses.find_course_by_title.return_value = make_course([])

    response = tables.handler().handle(create_admin_event("POST", "/admin/courses", COURSE_BODY))

    assert response["statusCode"] == 400
    assert _body(response)["message"] == 'A course with the title "Full Stack Bootcamp" already exists.'
    tables.courses.save_course.assert_not_called()


def test_create_course_end_before_start(tables: Tables):
    body = {**COURSE_BODY, "endDate": "2025-02-01T00:00:00Z"}

    response = tables.handler().handle(create_admin_event("POST", "/admin/courses", body))

    assert response["statusCode"] == 400
    assert _body(response)["errorCode"] == "VALIDATION_ERROR"


def test_update_course_only_touches_metadata(tables: Tables):
    tables.courses.update_course_metadata.return_value = make_course(["M1"], locked=["M1"])
    tables.courses.find_course_by_title.return_value = None

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/courses/course-1", {**COURSE_BODY, "title": "Renamed"})
    )

    assert response["statusCode"] == 200
    course_id, changes = tables.courses.update_course_metadata.call_args.args
    assert course_id == "course-1"
    assert changes.title == "Renamed"
    tables.courses.save_course.assert_not_called()
    tables.courses.update_course_structure.assert_not_called()
    tables.courses.find_course_by_title.assert_called_once_with("Renamed", exclude_course_id="course-1")
    tables.courses.find_course_by_title.assert_called_once_with("Renamed", exclude_course_id="course-1")


def test_update_missing_course(tables: Tables):
    tables.courses.find_course_by_title.return_value = None
    tables.courses.update_course_metadata.return_value = None

    response = tables.handler().handle(create_admin_event("PUT", "/admin/courses/nope", COURSE_BODY))

    assert response["statusCode"] == 404


def test_set_course_modules_prunes_schedule_and_locks(tables: Tables):
    course = make_course(
        ["M1", "M2"],
        schedules=[make_schedule("M1", [("A", day(2))]), make_schedule("M2", [("B", day(3))])],
        locked=["M2"],
    )
    tables.courses.get_course.return_value = course
    tables.modules.get_modules.return_value = {"M1": make_module("M1", []), "M3": make_module("M3", [])}
    tables.courses.update_course_structure.return_value = course

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/courses/course-1/modules", {"modules": ["M3", "M1"]})
    )

    assert response["statusCode"] == 200
    course_id, modules, schedule, locked = tables.courses.update_course_structure.call_args.args
    assert modules == ["M3", "M1"]
    assert [entry.moduleId for entry in schedule] == ["M1"]
    assert locked == []


def test_set_course_modules_unknown_module(tables: Tables):
    tables.courses.get_course.return_value = make_course([])
    tables.modules.get_modules.return_value = {}

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/courses/course-1/modules", {"modules": ["M404"]})
    )

    assert response["statusCode"] == 400
    assert "M404" in _body(response)["message"]


def test_put_module_schedule(tables: Tables):
    course = make_course(["M1", "M2"], schedules=[make_schedule("M1", [], test_link="https://t/m1")])
    tables.courses.get_course.return_value = course
    tables.modules.get_module.return_value = make_module("M1", ["A", "B"])
    tables.topics.get_topics.return_value = {"A": make_topic("A"), "B": make_topic("B")}
    tables.courses.update_course_structure.return_value = course

    body = {
        "topicSchedules": [
            {"topicId": "A", "date": "2025-03-03T00:00:00Z"},
            {"topicId": "A", "date": "2025-03-05T00:00:00Z"},
            {"topicId": "B", "date": None},
        ]
    }
    response = tables.handler().handle(create_admin_event("PUT", "/admin/courses/course-1/modules/M1/schedule", body))

    assert response["statusCode"] == 200
    _, modules, schedule, locked = tables.courses.update_course_structure.call_args.args
    assert modules == ["M1", "M2"]
    assert len(schedule) == 1
    assert schedule[0].moduleId == "M1"
    assert schedule[0].testLink == "https://t/m1"
    assert [e.date for e in schedule[0].topicSchedules] == [day(3), day(5), None]


def test_put_module_schedule_conflict(tables: Tables):
    course = make_course(["M1", "M2"], schedules=[make_schedule("M2", [("C", day(3))])])
    tables.courses.get_course.return_value = course
    tables.modules.get_module.return_value = make_module("M1", ["A"])
    tables.topics.get_topics.return_value = {"A": make_topic("A", name="Arrays")}

    body = {"topicSchedules": [{"topicId": "A", "date": "2025-03-03T08:00:00Z"}], "testLink": "https://t"}
    response = tables.handler().handle(create_admin_event("PUT", "/admin/courses/course-1/modules/M1/schedule", body))

    assert response["statusCode"] == 400
    assert _body(response)["message"] == 'Multiple topics assigned to 03 Mar 2025: "C" and "Arrays"'
    tables.courses.update_course_structure.assert_not_called()


def test_put_module_schedule_missing_module(tables: Tables):
    tables.courses.get_course.return_value = make_course(["M1"])
    tables.modules.get_module.return_value = None

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/courses/course-1/modules/M1/schedule", {"topicSchedules": []})
    )

    assert response["statusCode"] == 404


def test_put_locked_modules(tables: Tables):
    course = make_course(["M1", "M2"])
    tables.courses.get_course.return_value = course
    tables.courses.update_course_structure.return_value = course

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/courses/course-1/locked-modules", {"lockedModules": ["M2", "M2"]})
    )

    assert response["statusCode"] == 200
    assert tables.courses.update_course_structure.call_args.args[3] == ["M2"]


def test_put_locked_modules_outside_course(tables: Tables):
    tables.courses.get_course.return_value = make_course(["M1"])

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/courses/course-1/locked-modules", {"lockedModules": ["M7"]})
    )

    assert response["statusCode"] == 400


def test_create_module_topic_and_problem(tables: Tables):
    tables.problems.find_problem_by_link.return_value = None
    tables.topics.get_topics.return_value = {"A": make_topic("A")}
    tables.problems.get_problems.return_value = {"P1": make_problem("P1")}
    handler = tables.handler()

    module = handler.handle(create_admin_event("POST", "/admin/modules", {"title": "Arrays", "topics": ["A"]}))
    topic = handler.handle(
        create_admin_event("POST", "/admin/topics", {"topicName": "Two Pointers", "assignmentProblems": ["P1"]})
    )
    problem = handler.handle(
        create_admin_event("POST", "/admin/problems", {"title": "Two Sum", "link": "https://leetcode.com/two-sum"})
    )

    assert [r["statusCode"] for r in (module, topic, problem)] == [201, 201, 201]
    assert _body(module)["topics"] == ["A"]
    assert _body(topic)["assignmentProblems"] == ["P1"]
    assert _body(problem)["platform"] == "Other"
    assert _body(problem)["difficulty"] == "Medium"
    tables.modules.save_module.assert_called_once()
    tables.topics.save_topic.assert_called_once()
    tables.problems.save_problem.assert_called_once()


def test_create_problem_duplicate_link(tables: Tables):
    tables.problems.find_problem_by_link.return_value = make_problem("P1")

    response = tables.handler().handle(
        create_admin_event("POST", "/admin/problems", {"title": "Again", "link": "https://x.dev/P1"})
    )

    assert response["statusCode"] == 400
    tables.problems.save_problem.assert_not_called()


def test_delete_module_cascades(tables: Tables):
    tables.modules.delete_module.return_value = make_module("M1", [])
    tables.courses.remove_module_references.return_value = 2

    response = tables.handler().handle(create_admin_event("DELETE", "/admin/modules/M1"))

    assert response["statusCode"] == 200
    assert _body(response) == {"moduleId": "M1", "coursesUpdated": 2}
    tables.courses.remove_module_references.assert_called_once_with("M1")


def test_delete_missing_topic(tables: Tables):
    tables.topics.delete_topic.return_value = False

    response = tables.handler().handle(create_admin_event("DELETE", "/admin/topics/T1"))

    assert response["statusCode"] == 404
    tables.modules.remove_topic_references.assert_not_called()


def test_delete_topic_cascades(tables: Tables):
    tables.topics.delete_topic.return_value = True
    tables.modules.remove_topic_references.return_value = 1

    response = tables.handler().handle(create_admin_event("DELETE", "/admin/topics/T1"))

    assert _body(response) == {"topicId": "T1", "modulesUpdated": 1}


def test_create_batch(tables: Tables):
    tables.batches.find_batch_by_name.return_value = None
    tables.courses.get_course.return_value = make_course([])
    body = {
        "name": "Spring",
        "courseId": "course-1",
        "startDate": "2025-03-01T00:00:00Z",
        "endDate": "2025-03-31T00:00:00Z",
    }

    response = tables.handler().handle(create_admin_event("POST", "/admin/batches", body))

    assert response["statusCode"] == 201
    assert _body(response)["trainees"] == []
    tables.batches.save_batch.assert_called_once()


def test_create_batch_for_unknown_course(tables: Tables):
    tables.batches.find_batch_by_name.return_value = None
    tables.courses.get_course.return_value = None
    body = {
        "name": "Spring",
        "courseId": "nope",
        "startDate": "2025-03-01T00:00:00Z",
        "endDate": "2025-03-31T00:00:00Z",
    }

    response = tables.handler().handle(create_admin_event("POST", "/admin/batches", body))

    assert response["statusCode"] == 404


def test_set_batch_trainees(tables: Tables):
    tables.batches.set_trainees.return_value = BatchModel(
        batchId="b1", name="Spring", courseId="c1", trainees=["t1"], startDate=day(1), endDate=day(2)
    )

    response = tables.handler().handle(create_admin_event("PUT", "/admin/batches/b1/trainees", {"traineeIds": ["t1"]}))

    assert response["statusCode"] == 200
    tables.batches.set_trainees.assert_called_once_with("b1", ["t1"])


@pytest.mark.parametrize("role, status", [("admin", 200), ("trainer", 200), ("trainee", 403)])
def test_trainee_view_preview(tables: Tables, role: str, status: int):
    view = Mock()
    view.model_dump.return_value = {"courseId": "course-1"}
    tables.course_view_builder.build_trainee_view.return_value = view

    response = tables.handler().handle(
        create_admin_event("GET", "/admin/courses/course-1/trainees/t1/view", role=role)
    )

    assert response["statusCode"] == status
    if status == 200:
        tables.course_view_builder.build_trainee_view.assert_called_once_with("course-1", "t1")


def test_trainer_can_read_but_not_write(tables: Tables):
    tables.modules.list_modules.return_value = [make_module("M1", ["A"])]
    handler = tables.handler()

    listing = handler.handle(create_admin_event("GET", "/admin/modules", role="trainer"))
    update = handler.handle(create_admin_event("PUT", "/admin/modules/M1", {"title": "X"}, role="trainer"))

    assert listing["statusCode"] == 200
    assert _body(listing)["modules"][0]["moduleId"] == "M1"
    assert update["statusCode"] == 403
    tables.modules.update_module.assert_not_called()


@pytest.mark.parametrize(
    "path, table_attr, method_name, key",
    [
        ("/admin/courses", "courses", "list_courses", "courses"),
        ("/admin/modules", "modules", "list_modules", "modules"),
        ("/admin/topics", "topics", "list_topics", "topics"),
        ("/admin/problems", "problems", "list_problems", "problems"),
        ("/admin/batches", "batches", "list_batches", "batches"),
    ],
)
def test_list_routes(tables: Tables, path: str, table_attr: str, method_name: str, key: str):
    getattr(getattr(tables, table_attr), method_name).return_value = []

    response = tables.handler().handle(create_admin_event("GET", path))

    assert response["statusCode"] == 200
    assert _body(response) == {key: []}


def test_get_single_items(tables: Tables):
    tables.courses.get_course.return_value = make_course(["M1"])
    tables.topics.get_topic.return_value = None
    tables.problems.get_problems.return_value = {"P1": make_problem("P1")}
    handler = tables.handler()

    course = handler.handle(create_admin_event("GET", "/admin/courses/course-1"))
    topic = handler.handle(create_admin_event("GET", "/admin/topics/T404"))
    problem = handler.handle(create_admin_event("GET", "/admin/problems/P1"))

    assert course["statusCode"] == 200
    assert _body(course)["modules"] == ["M1"]
    assert topic["statusCode"] == 404
    assert _body(topic)["message"] == "Topic T404 not found."
    assert _body(problem)["problemId"] == "P1"


def test_update_module_topics(tables: Tables):
    tables.topics.get_topics.return_value = {"A": make_topic("A"), "B": make_topic("B")}
    tables.modules.update_module.return_value = make_module("M1", ["B", "A"], title="Arrays")

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/modules/M1", {"title": "Arrays", "topics": ["B", "A", "B"]})
    )

    assert response["statusCode"] == 200
    assert _body(response)["topics"] == ["B", "A"]
    module_id, changes = tables.modules.update_module.call_args.args
    assert module_id == "M1"
    assert changes.topics == ["B", "A"]


def test_update_module_with_unknown_topic(tables: Tables):
    tables.topics.get_topics.return_value = {"A": make_topic("A")}

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/modules/M1", {"title": "Arrays", "topics": ["A", "Z"]})
    )

    assert response["statusCode"] == 400
    assert _body(response)["message"] == "Unknown topics: Z"
    tables.modules.update_module.assert_not_called()


def test_update_missing_module(tables: Tables):
    tables.topics.get_topics.return_value = {}
    tables.modules.update_module.return_value = None

    response = tables.handler().handle(create_admin_event("PUT", "/admin/modules/M404", {"title": "Arrays"}))

    assert response["statusCode"] == 404


def test_update_topic_problem_lists(tables: Tables):
    tables.problems.get_problems.return_value = {"P1": make_problem("P1"), "P2": make_problem("P2")}
    tables.topics.update_topic.return_value = make_topic("T1", assignments=["P2"], practice=["P1"])

    response = tables.handler().handle(
        create_admin_event(
            "PUT",
            "/admin/topics/T1",
            {"topicName": "Sorting", "assignmentProblems": ["P2"], "practiceProblems": ["P1"]},
        )
    )

    assert response["statusCode"] == 200
    topic_id, changes = tables.topics.update_topic.call_args.args
    assert topic_id == "T1"
    assert changes.assignmentProblems == ["P2"]
    assert changes.practiceProblems == ["P1"]


def test_create_topic_with_unknown_problem(tables: Tables):
    tables.problems.get_problems.return_value = {}

    response = tables.handler().handle(
        create_admin_event("POST", "/admin/topics", {"topicName": "Sorting", "practiceProblems": ["P9"]})
    )

    assert response["statusCode"] == 400
    assert _body(response)["message"] == "Unknown problems: P9"
    tables.topics.save_topic.assert_not_called()


def test_update_problem_duplicate_link(tables: Tables):
    tables.problems.find_problem_by_link.return_value = make_problem("P2")

    response = tables.handler().handle(
        create_admin_event("PUT", "/admin/problems/P1", {"title": "Two Sum", "link": "https://x.dev/P2"})
    )

    assert response["statusCode"] == 400
    tables.problems.find_problem_by_link.assert_called_once_with("https://x.dev/P2", exclude_problem_id="P1")
    tables.problems.update_problem.assert_not_called()


def test_update_problem(tables: Tables):
    tables.problems.find_problem_by_link.return_value = None
    tables.problems.update_problem.return_value = make_problem("P1", difficulty="Hard")

    response = tables.handler().handle(
        create_admin_event(
            "PUT", "/admin/problems/P1", {"title": "Problem P1", "link": "https://x.dev/P1", "difficulty": "Hard"}
        )
    )

    assert response["statusCode"] == 200
    assert _body(response)["difficulty"] == "Hard"


def test_delete_problem_cascades(tables: Tables):
    tables.problems.delete_problem.return_value = True
    tables.topics.remove_problem_references.return_value = 3

    response = tables.handler().handle(create_admin_event("DELETE", "/admin/problems/P1"))

    assert _body(response) == {"problemId": "P1", "topicsUpdated": 3}
    tables.topics.remove_problem_references.assert_called_once_with("P1")


def test_delete_course(tables: Tables):
    tables.courses.delete_course.side_effect = [True, False]
    handler = tables.handler()

    deleted = handler.handle(create_admin_event("DELETE", "/admin/courses/course-1"))
    missing = handler.handle(create_admin_event("DELETE", "/admin/courses/course-1"))

    assert _body(deleted) == {"courseId": "course-1"}
    assert missing["statusCode"] == 404


BATCH_BODY = {
    "name": "Spring",
    "courseId": "course-1",
    "startDate": "2025-03-01T00:00:00Z",
    "endDate": "2025-03-31T00:00:00Z",
}


def test_update_batch(tables: Tables):
    tables.batches.find_batch_by_name.return_value = None
    tables.courses.get_course.return_value = make_course([])
    tables.batches.update_batch.return_value = BatchModel(
        batchId="b1", name="Spring", courseId="course-1", trainees=["t1"], startDate=day(1), endDate=day(31)
    )

    response = tables.handler().handle(create_admin_event("PUT", "/admin/batches/b1", BATCH_BODY))

    assert response["statusCode"] == 200
    assert _body(response)["trainees"] == ["t1"]
    tables.batches.find_batch_by_name.assert_called_once_with("Spring", exclude_batch_id="b1")


def test_update_batch_duplicate_name(tables: Tables):
    tables.batches.find_batch_by_name.return_value = Mock()

    response = tables.handler().handle(create_admin_event("PUT", "/admin/batches/b1", BATCH_BODY))

    assert response["statusCode"] == 400
    assert _body(response)["message"] == 'A batch with the name "Spring" already exists.'
    tables.batches.update_batch.assert_not_called()


def test_delete_batch_removes_progress(tables: Tables):
    tables.batches.delete_batch.return_value = True
    tables.progress.delete_batch_progress.return_value = 12

    response = tables.handler().handle(create_admin_event("DELETE", "/admin/batches/b1"))

    assert _body(response) == {"batchId": "b1", "progressDeleted": 12}


def test_delete_missing_batch_keeps_progress(tables: Tables):
    tables.batches.delete_batch.return_value = False

    response = tables.handler().handle(create_admin_event("DELETE", "/admin/batches/b1"))

    assert response["statusCode"] == 404
    tables.progress.delete_batch_progress.assert_not_called()
