from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from owlcode_backend.dynamodb.courses_table import CoursesTable
from owlcode_backend.models.course_models import CourseInputModel, ModuleScheduleEntryModel, TopicScheduleEntryModel
from owlcode_backend.utils.base_types import CourseId, ModuleId

from test_utils.curriculum_factory import day, make_course, make_schedule

REGION = "us-west-1"
TABLE_NAME = "CoursesTable"


@pytest.fixture
def dynamodb_courses_table(aws_credentials):
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{"AttributeName": "courseId", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "courseId", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        yield


@pytest.fixture
def courses_table(dynamodb_courses_table) -> CoursesTable:
    return CoursesTable(TABLE_NAME)


def test_get_course_not_exists(courses_table: CoursesTable):
    assert courses_table.get_course(CourseId("missing")) is None


def test_save_and_get_course_round_trips_dates(courses_table: CoursesTable):
    course = make_course(["M1", "M2"], schedules=[make_schedule("M1", [("A", day(3)), ("B", None)], "https://t/1")])

    courses_table.save_course(course)
    fetched = courses_table.get_course(course.courseId)

    assert fetched == course
    assert fetched.moduleSchedule[0].topicSchedules[0].date == day(3)
    assert fetched.moduleSchedule[0].topicSchedules[1].date is None


def test_find_course_by_title_is_case_insensitive(courses_table: CoursesTable):
    course = make_course(["M1"])
    courses_table.save_course(course)

    assert courses_table.find_course_by_title("  full STACK bootcamp ").courseId == course.courseId
    assert courses_table.find_course_by_title("Data Science") is None
    assert courses_table.find_course_by_title("Full Stack Bootcamp", exclude_course_id=course.courseId) is None


def test_invalid_stored_course_is_skipped(courses_table: CoursesTable):
    courses_table.table.put_item(Item={"courseId": "broken", "title": "No dates"})
    courses_table.save_course(make_course(["M1"]))

    assert courses_table.get_course(CourseId("broken")) is None
    assert [c.courseId for c in courses_table.list_courses()] == ["course-1"]


def test_update_course_structure(courses_table: CoursesTable):
    courses_table.save_course(make_course(["M1"]))
    schedule = [
        ModuleScheduleEntryModel(
            moduleId=ModuleId("M2"),
            topicSchedules=[TopicScheduleEntryModel(topicId="C", date=day(9))],
        )
    ]

    updated = courses_table.update_course_structure(
        CourseId("course-1"), [ModuleId("M1"), ModuleId("M2")], schedule, [ModuleId("M1")]
    )

    assert updated.modules == ["M1", "M2"]
    assert updated.moduleSchedule == schedule
    assert updated.lockedModules == ["M1"]
    assert courses_table.get_course(CourseId("course-1")) == updated


def test_update_course_structure_missing_course(courses_table: CoursesTable):
    assert courses_table.update_course_structure(CourseId("nope"), [], [], []) is None
    assert courses_table.get_course(CourseId("nope")) is None


def test_remove_module_references(courses_table: CoursesTable):
    courses_table.save_course(
        make_course(
            ["M1", "M2"],
            schedules=[make_schedule("M1", [("A", day(2))]), make_schedule("M2", [("B", day(3))])],
            locked=["M2"],
            course_id="c1",
        )
    )
    courses_table.save_course(make_course(["M1"], course_id="c2"))

    assert courses_table.remove_module_references(ModuleId("M2")) == 1

    c1 = courses_table.get_course(CourseId("c1"))
    assert c1.modules == ["M1"]
    assert [entry.moduleId for entry in c1.moduleSchedule] == ["M1"]
    assert c1.lockedModules == []
    assert courses_table.get_course(CourseId("c2")).modules == ["M1"]


def test_remove_module_references_keeps_concurrent_lock_change(courses_table: CoursesTable):
    courses_table.save_course(make_course(["M1", "M2"], course_id="c1"))
    real_update_item = courses_table.table.update_item
    calls = []

    def update_item_after_lock_write(**kwargs):
        if not calls:
            # An admin locks M1 between the scan and the first write
            real_update_item(
                Key={"courseId": "c1"},
                UpdateExpression="SET lockedModules = :locked",
                ExpressionAttributeValues={":locked": ["M1"]},
            )
        calls.append(kwargs)
        return real_update_item(**kwargs)

    with patch.object(courses_table.table, "update_item", side_effect=update_item_after_lock_write):
        assert courses_table.remove_module_references(ModuleId("M2")) == 1

    assert len(calls) == 2
    c1 = courses_table.get_course(CourseId("c1"))
    assert c1.modules == ["M1"]
    assert c1.lockedModules == ["M1"]


def test_remove_module_references_skips_course_deleted_meanwhile(courses_table: CoursesTable):
    courses_table.save_course(make_course(["M1", "M2"], course_id="c1"))
    real_update_item = courses_table.table.update_item

    def update_item_after_delete(**kwargs):
        courses_table.table.delete_item(Key={"courseId": "c1"})
        return real_update_item(**kwargs)

    with patch.object(courses_table.table, "update_item", side_effect=update_item_after_delete):
        assert courses_table.remove_module_references(ModuleId("M2")) == 0

    assert courses_table.get_course(CourseId("c1")) is None


def test_update_course_metadata_keeps_structure(courses_table: CoursesTable):
    courses_table.save_course(
        make_course(["M1"], schedules=[make_schedule("M1", [("A", day(2))])], locked=["M1"])
    )
    changes = CourseInputModel(
        title="Renamed Bootcamp",
        startDate=day(2),
        endDate=day(30),
        excludedDays=[0, 6],
    )

    updated = courses_table.update_course_metadata(CourseId("course-1"), changes)

    assert updated.title == "Renamed Bootcamp"
    assert updated.excludedDays == [0, 6]
    assert updated.modules == ["M1"]
    assert updated.lockedModules == ["M1"]
    assert updated.moduleSchedule[0].topicSchedules[0].date == day(2)
    assert courses_table.find_course_by_title("renamed bootcamp").courseId == "course-1"
    assert courses_table.find_course_by_title("Full Stack Bootcamp") is None


def test_update_course_metadata_missing_course(courses_table: CoursesTable):
    changes = CourseInputModel(title="X", startDate=day(1), endDate=day(2))

    assert courses_table.update_course_metadata(CourseId("nope"), changes) is None
    assert courses_table.get_course(CourseId("nope")) is None


def test_delete_course(courses_table: CoursesTable):
    courses_table.save_course(make_course([]))

    assert courses_table.delete_course(CourseId("course-1")) is True
    assert courses_table.delete_course(CourseId("course-1")) is False
