import logging
import typing

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from pydantic import ValidationError

from owlcode_backend.dynamodb.table_utils import rewrite_lists_if_unchanged, scan_all, update_existing_item
from owlcode_backend.models.course_models import CourseInputModel, CourseModel, ModuleScheduleEntryModel
from owlcode_backend.utils.base_types import CourseId, ModuleId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class CoursesTable:
    """
    Data Abstraction Layer for the Courses DynamoDB table.

    Table Schema:
      - PK: courseId
      - titleLower: lower-cased title, used for case-insensitive uniqueness checks
      - modules / moduleSchedule / lockedModules: the course structure read by the schedule resolver
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse(self, item: dict[str, typing.Any]) -> typing.Optional[CourseModel]:
        try:
            return CourseModel.model_validate(item)
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate course item {item.get('courseId')}: {ve}", exc_info=True)
            return None

    def get_course(self, course_id: CourseId) -> typing.Optional[CourseModel]:
        """
        Retrieves a course by id.

        :return: CourseModel instance if found and valid, else None.
        """
        _LOGGER.debug(f"Fetching course {course_id}")
        try:
            response = self.table.get_item(Key={"courseId": course_id})
        except ClientError as e:
            _LOGGER.error(f"Failed to get course {course_id}: {e.response['Error']['Message']}")
            raise

        item = response.get("Item")
        if not item:
            _LOGGER.info(f"No course found for course_id: {course_id}")
            return None
        return self._parse(item)

    def list_courses(self) -> list[CourseModel]:
        try:
            items = scan_all(self.table)
        except ClientError as e:
            _LOGGER.error(f"Failed to scan courses: {e.response['Error']['Message']}")
            raise
        return [course for course in (self._parse(item) for item in items) if course]

    def find_course_by_title(
        self,
        title: str,
        exclude_course_id: typing.Optional[CourseId] = None,
    ) -> typing.Optional[CourseModel]:
        """Case-insensitive title lookup, optionally ignoring the course being renamed."""
        filter_expression = Attr("titleLower").eq(title.strip().lower())
        if exclude_course_id:
            filter_expression = filter_expression & Attr("courseId").ne(exclude_course_id)

        try:
            items = scan_all(self.table, FilterExpression=filter_expression)
        except ClientError as e:
            _LOGGER.error(f"Failed to look up course title '{title}': {e.response['Error']['Message']}")
            raise
        return self._parse(items[0]) if items else None

    def save_course(self, course: CourseModel) -> CourseModel:
        item = course.model_dump(mode="json", exclude_none=True)
        item["titleLower"] = course.title.strip().lower()
        try:
            self.table.put_item(Item=item)
            _LOGGER.info(f"Saved course {course.courseId} ('{course.title}')")
            return course
        except ClientError as e:
            _LOGGER.error(f"Error saving course {course.courseId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def update_course_structure(
        self,
        course_id: CourseId,
        modules: list[ModuleId],
        module_schedule: list[ModuleScheduleEntryModel],
        locked_modules: list[ModuleId],
    ) -> typing.Optional[CourseModel]:
        """
        Overwrites the module list, module schedule and locked modules of an existing course.

        :return: The updated course, or None if the course does not exist.
        """
        _LOGGER.info(f"Updating structure of course {course_id}: {len(modules)} modules, {len(locked_modules)} locked")
        try:
            response = self.table.update_item(
                Key={"courseId": course_id},
                UpdateExpression="SET #modules = :modules, #moduleSchedule = :schedule, #lockedModules = :locked",
                ConditionExpression="attribute_exists(courseId)",
                ExpressionAttributeNames={
                    "#modules": "modules",
                    "#moduleSchedule": "moduleSchedule",
                    "#lockedModules": "lockedModules",
                },
                ExpressionAttributeValues={
                    ":modules": list(modules),
                    ":schedule": [entry.model_dump(mode="json") for entry in module_schedule],
                    ":locked": list(locked_modules),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                _LOGGER.info(f"Course {course_id} does not exist; structure not updated.")
                return None
            _LOGGER.error(f"Error updating course {course_id}: {e.response['Error']['Message']}", exc_info=True)
            raise
        return self._parse(response["Attributes"])

    def update_course_metadata(self, course_id: CourseId, changes: CourseInputModel) -> typing.Optional[CourseModel]:
        """
        Overwrites title, description, dates and holidays, leaving the course structure alone.

        :return: The updated course, or None if the course does not exist.
        """
        values = changes.model_dump(mode="json")
        values["titleLower"] = changes.title.strip().lower()
        item = update_existing_item(self.table, {"courseId": course_id}, values)
        if item is None:
            return None
        _LOGGER.info(f"Updated metadata of course {course_id} ('{changes.title}')")
        return self._parse(item)

    def delete_course(self, course_id: CourseId) -> bool:
        """:return: True if a course was deleted, False if it did not exist."""
        try:
            response = self.table.delete_item(Key={"courseId": course_id}, ReturnValues="ALL_OLD")
        except ClientError as e:
            _LOGGER.error(f"Error deleting course {course_id}: {e.response['Error']['Message']}", exc_info=True)
            raise
        deleted = bool(response.get("Attributes"))
        if deleted:
            _LOGGER.info(f"Deleted course {course_id}")
        return deleted

    def remove_module_references(self, module_id: ModuleId) -> int:
        """
        Pulls a module out of every course's modules, moduleSchedule and lockedModules.
        A course whose structure changes concurrently is re-read and pulled again, so that
        change isn't overwritten.

        :return: Number of courses updated.
        """

        def without_module(item: dict[str, typing.Any]) -> typing.Optional[dict[str, typing.Any]]:
            course = self._parse(item)
            if not course:
                return None
            in_schedule = course.get_module_schedule(module_id) is not None
            if module_id not in course.modules and module_id not in course.lockedModules and not in_schedule:
                return None
            return {
                "modules": [mid for mid in course.modules if mid != module_id],
                "moduleSchedule": [
                    entry.model_dump(mode="json") for entry in course.moduleSchedule if entry.moduleId != module_id
                ],
                "lockedModules": [mid for mid in course.lockedModules if mid != module_id],
            }

        try:
            items = scan_all(self.table, FilterExpression=Attr("modules").contains(module_id))
            courses_updated = sum(
                rewrite_lists_if_unchanged(self.table, {"courseId": item["courseId"]}, item, without_module)
                for item in items
            )
        except ClientError as e:
            _LOGGER.error(f"Failed to remove module {module_id} from courses: {e.response['Error']['Message']}")
            raise
        _LOGGER.info(f"Removed module {module_id} from {courses_updated} course(s)")
        return courses_updated
