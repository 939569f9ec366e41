import logging
import typing

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from pydantic import ValidationError

from owlcode_backend.dynamodb.table_utils import (
    batch_get_items,
    rewrite_lists_if_unchanged,
    scan_all,
    update_existing_item,
)
from owlcode_backend.models.course_models import TopicInputModel, TopicModel
from owlcode_backend.utils.base_types import ProblemId, TopicId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_PROBLEM_LISTS = ("assignmentProblems", "practiceProblems")


class TopicsTable:
    """
    Data Abstraction Layer for the Topics DynamoDB table.

    Table Schema:
      - PK: topicId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse_items(self, items: list[dict[str, typing.Any]]) -> list[TopicModel]:
        topics = []
        for item in items:
            try:
                topics.append(TopicModel.model_validate(item))
            except ValidationError as ve:
                _LOGGER.warning(f"Skipping invalid topic item {item.get('topicId')}: {ve}")
        return topics

    def get_topic(self, topic_id: TopicId) -> typing.Optional[TopicModel]:
        try:
            response = self.table.get_item(Key={"topicId": topic_id})
        except ClientError as e:
            _LOGGER.error(f"Failed to get topic {topic_id}: {e.response['Error']['Message']}")
            raise
        item = response.get("Item")
        if not item:
            _LOGGER.info(f"No topic found for topic_id: {topic_id}")
            return None
        parsed = self._parse_items([item])
        return parsed[0] if parsed else None

    def get_topics(self, topic_ids: typing.Iterable[TopicId]) -> dict[TopicId, TopicModel]:
        """Batch fetches topics, keyed by id. Unknown ids are left out."""
        try:
            items = batch_get_items(self.client, self.table.name, "topicId", topic_ids)
        except ClientError as e:
            _LOGGER.error(f"Failed to batch get topics: {e.response['Error']['Message']}")
            raise
        return {topic.topicId: topic for topic in self._parse_items(items)}

    def list_topics(self) -> list[TopicModel]:
        try:
            items = scan_all(self.table)
        except ClientError as e:
            _LOGGER.error(f"Failed to scan topics: {e.response['Error']['Message']}")
            raise
        return sorted(self._parse_items(items), key=lambda topic: topic.topicName.lower())

    def save_topic(self, topic: TopicModel) -> TopicModel:
        try:
            self.table.put_item(Item=topic.model_dump(mode="json", exclude_none=True))
            _LOGGER.info(f"Saved topic {topic.topicId} ('{topic.topicName}')")
            return topic
        except ClientError as e:
            _LOGGER.error(f"Error saving topic {topic.topicId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def update_topic(self, topic_id: TopicId, changes: TopicInputModel) -> typing.Optional[TopicModel]:
        """
        Replaces a topic's metadata and problem lists.

        :return: The updated topic, or None if it does not exist.
        """
        item = update_existing_item(self.table, {"topicId": topic_id}, changes.model_dump(mode="json"))
        if item is None:
            return None
        _LOGGER.info(
            f"Updated topic {topic_id}: {len(changes.assignmentProblems)} assignments, "
            f"{len(changes.practiceProblems)} practice problems"
        )
        parsed = self._parse_items([item])
        return parsed[0] if parsed else None

    def delete_topic(self, topic_id: TopicId) -> bool:
        """:return: True if a topic was deleted, False if it did not exist."""
        try:
            response = self.table.delete_item(Key={"topicId": topic_id}, ReturnValues="ALL_OLD")
        except ClientError as e:
            _LOGGER.error(f"Error deleting topic {topic_id}: {e.response['Error']['Message']}", exc_info=True)
            raise
        deleted = bool(response.get("Attributes"))
        if deleted:
            _LOGGER.info(f"Deleted topic {topic_id}")
        return deleted

    def remove_problem_references(self, problem_id: ProblemId) -> int:
        """
        Pulls a problem out of every topic's assignment and practice lists.

        :return: Number of topics updated.
        """

        def without_problem(item: dict[str, typing.Any]) -> typing.Optional[dict[str, typing.Any]]:
            if not any(problem_id in (item.get(name) or []) for name in _PROBLEM_LISTS):
                return None
            return {name: [pid for pid in item.get(name) or [] if pid != problem_id] for name in _PROBLEM_LISTS}

        filter_expression = Attr("assignmentProblems").contains(problem_id) | Attr("practiceProblems").contains(
            problem_id
        )
        try:
            items = scan_all(self.table, FilterExpression=filter_expression)
            topics_updated = sum(
                rewrite_lists_if_unchanged(self.table, {"topicId": item["topicId"]}, item, without_problem)
                for item in items
            )
        except ClientError as e:
            _LOGGER.error(f"Failed to remove problem {problem_id} from topics: {e.response['Error']['Message']}")
            raise
        _LOGGER.info(f"Removed problem {problem_id} from {topics_updated} topic(s)")
        return topics_updated
