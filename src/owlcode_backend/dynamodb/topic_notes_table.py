import logging
import typing
from datetime import datetime, timezone

import boto3
from botocore.exceptions import ClientError
from pydantic import ValidationError

from owlcode_backend.models.topic_note_models import TopicNoteModel
from owlcode_backend.utils.base_types import CourseId, IsoTimestamp, TopicId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class TopicNotesTable:
    """
    Data Abstraction Layer for trainees' private topic notes.

    Table Schema:
      - PK: userId
      - SK: topicId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_note(self, user_id: UserId, topic_id: TopicId) -> typing.Optional[TopicNoteModel]:
        try:
            response = self.table.get_item(Key={"userId": user_id, "topicId": topic_id})
            item = response.get("Item")
            if item:
                return TopicNoteModel.model_validate(item)
            return None
        except ClientError as e:
            _LOGGER.error(f"Failed to get note of {user_id} on topic {topic_id}: {e.response['Error']['Message']}")
            raise
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate note of {user_id} on topic {topic_id}: {ve}", exc_info=True)
            return None

    def save_note(self, user_id: UserId, topic_id: TopicId, course_id: CourseId, note: str) -> TopicNoteModel:
        """Creates or replaces the user's note on a topic."""
        note_model = TopicNoteModel(
            userId=user_id,
            topicId=topic_id,
            courseId=course_id,
            note=note,
            updatedAt=IsoTimestamp(datetime.now(timezone.utc).isoformat()),
        )
        try:
            self.table.put_item(Item=note_model.model_dump(exclude_none=True))
            _LOGGER.info(f"Saved note of {user_id} on topic {topic_id}")
            return note_model
        except ClientError as e:
            _LOGGER.error(
                f"Error saving note of {user_id} on topic {topic_id}: {e.response['Error']['Message']}", exc_info=True
            )
            raise
