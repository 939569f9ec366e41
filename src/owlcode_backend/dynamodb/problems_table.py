import logging
import typing

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from pydantic import ValidationError

from owlcode_backend.dynamodb.table_utils import batch_get_items, scan_all, update_existing_item
from owlcode_backend.models.course_models import ProblemInputModel, ProblemModel
from owlcode_backend.utils.base_types import ProblemId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ProblemsTable:
    """
    Data Abstraction Layer for the Problems DynamoDB table (the shared problem library).

    Table Schema:
      - PK: problemId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse_items(self, items: list[dict[str, typing.Any]]) -> list[ProblemModel]:
        problems = []
        for item in items:
            try:
                problems.append(ProblemModel.model_validate(item))
            except ValidationError as ve:
                _LOGGER.warning(f"Skipping invalid problem item {item.get('problemId')}: {ve}")
        return problems

    def get_problems(self, problem_ids: typing.Iterable[ProblemId]) -> dict[ProblemId, ProblemModel]:
        """Batch fetches problems, keyed by id. Unknown ids are left out."""
        try:
            items = batch_get_items(self.client, self.table.name, "problemId", problem_ids)
        except ClientError as e:
            _LOGGER.error(f"Failed to batch get problems: {e.response['Error']['Message']}")
            raise
        return {problem.problemId: problem for problem in self._parse_items(items)}

    def list_problems(self) -> list[ProblemModel]:
        try:
            items = scan_all(self.table)
        except ClientError as e:
            _LOGGER.error(f"Failed to scan problems: {e.response['Error']['Message']}")
            raise
        return sorted(self._parse_items(items), key=lambda problem: problem.title.lower())

    def find_problem_by_link(
        self,
        link: str,
        exclude_problem_id: typing.Optional[ProblemId] = None,
    ) -> typing.Optional[ProblemModel]:
        filter_expression = Attr("link").eq(link.strip())
        if exclude_problem_id:
            filter_expression = filter_expression & Attr("problemId").ne(exclude_problem_id)
        try:
            items = scan_all(self.table, FilterExpression=filter_expression)
        except ClientError as e:
            _LOGGER.error(f"Failed to look up problem link '{link}': {e.response['Error']['Message']}")
            raise
        parsed = self._parse_items(items)
        return parsed[0] if parsed else None

    def save_problem(self, problem: ProblemModel) -> ProblemModel:
        try:
            self.table.put_item(Item=problem.model_dump(mode="json", exclude_none=True))
            _LOGGER.info(f"Saved problem {problem.problemId} ('{problem.title}')")
            return problem
        except ClientError as e:
            _LOGGER.error(f"Error saving problem {problem.problemId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def update_problem(self, problem_id: ProblemId, changes: ProblemInputModel) -> typing.Optional[ProblemModel]:
        """:return: The updated problem, or None if it does not exist."""
        item = update_existing_item(self.table, {"problemId": problem_id}, changes.model_dump(mode="json"))
        if item is None:
            return None
        _LOGGER.info(f"Updated problem {problem_id} ('{changes.title}')")
        parsed = self._parse_items([item])
        return parsed[0] if parsed else None

    def delete_problem(self, problem_id: ProblemId) -> bool:
        """:return: True if a problem was deleted, False if it did not exist."""
        try:
            response = self.table.delete_item(Key={"problemId": problem_id}, ReturnValues="ALL_OLD")
        except ClientError as e:
            _LOGGER.error(f"Error deleting problem {problem_id}: {e.response['Error']['Message']}", exc_info=True)
            raise
        deleted = bool(response.get("Attributes"))
        if deleted:
            _LOGGER.info(f"Deleted problem {problem_id}")
        return deleted
