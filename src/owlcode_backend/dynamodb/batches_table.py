import logging
import typing

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from pydantic import ValidationError

from owlcode_backend.dynamodb.table_utils import scan_all, update_existing_item
from owlcode_backend.models.batch_models import BatchInputModel, BatchModel
from owlcode_backend.utils.base_types import BatchId, CourseId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class BatchesTable:
    """
    Data Abstraction Layer for the Batches DynamoDB table.

    Table Schema:
      - PK: batchId
      - nameLower: lower-cased name, used for case-insensitive uniqueness checks
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse_items(self, items: list[dict[str, typing.Any]]) -> list[BatchModel]:
        batches = []
        for item in items:
            try:
                batches.append(BatchModel.model_validate(item))
            except ValidationError as ve:
                _LOGGER.warning(f"Skipping invalid batch item {item.get('batchId')}: {ve}")
        return batches

    def get_batch(self, batch_id: BatchId) -> typing.Optional[BatchModel]:
        try:
            response = self.table.get_item(Key={"batchId": batch_id})
        except ClientError as e:
            _LOGGER.error(f"Failed to get batch {batch_id}: {e.response['Error']['Message']}")
            raise
        item = response.get("Item")
        if not item:
            _LOGGER.info(f"No batch found for batch_id: {batch_id}")
            return None
        parsed = self._parse_items([item])
        return parsed[0] if parsed else None

    def list_batches(self) -> list[BatchModel]:
        try:
            items = scan_all(self.table)
        except ClientError as e:
            _LOGGER.error(f"Failed to scan batches: {e.response['Error']['Message']}")
            raise
        return sorted(self._parse_items(items), key=lambda batch: batch.startDate)

    def list_batches_for_trainee(self, trainee_id: UserId) -> list[BatchModel]:
        try:
            items = scan_all(self.table, FilterExpression=Attr("trainees").contains(trainee_id))
        except ClientError as e:
            _LOGGER.error(f"Failed to find batches of trainee {trainee_id}: {e.response['Error']['Message']}")
            raise
        return sorted(self._parse_items(items), key=lambda batch: batch.startDate)

    def find_batch_by_name(
        self,
        name: str,
        exclude_batch_id: typing.Optional[BatchId] = None,
    ) -> typing.Optional[BatchModel]:
        filter_expression = Attr("nameLower").eq(name.strip().lower())
        if exclude_batch_id:
            filter_expression = filter_expression & Attr("batchId").ne(exclude_batch_id)
        try:
            items = scan_all(self.table, FilterExpression=filter_expression)
        except ClientError as e:
            _LOGGER.error(f"Failed to look up batch name '{name}': {e.response['Error']['Message']}")
            raise
        parsed = self._parse_items(items)
        return parsed[0] if parsed else None

    def find_batch_for_trainee(self, course_id: CourseId, trainee_id: UserId) -> typing.Optional[BatchModel]:
        """
        Finds the batch through which a trainee is enrolled in a course.
        If the trainee is (unexpectedly) in several batches of the course, the first found wins.
        """
        filter_expression = Attr("courseId").eq(course_id) & Attr("trainees").contains(trainee_id)
        try:
            items = scan_all(self.table, FilterExpression=filter_expression)
        except ClientError as e:
            _LOGGER.error(
                f"Failed to find batch for trainee {trainee_id} in course {course_id}: "
                f"{e.response['Error']['Message']}"
            )
            raise

        batches = self._parse_items(items)
        if not batches:
            _LOGGER.info(f"Trainee {trainee_id} is not enrolled in course {course_id}")
            return None
        if len(batches) > 1:
            _LOGGER.warning(f"Trainee {trainee_id} is in {len(batches)} batches of course {course_id}")
        return batches[0]

    def save_batch(self, batch: BatchModel) -> BatchModel:
        item = batch.model_dump(mode="json", exclude_none=True)
        item["nameLower"] = batch.name.strip().lower()
        try:
            self.table.put_item(Item=item)
            _LOGGER.info(f"Saved batch {batch.batchId} ('{batch.name}') with {len(batch.trainees)} trainees")
            return batch
        except ClientError as e:
            _LOGGER.error(f"Error saving batch {batch.batchId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def set_trainees(self, batch_id: BatchId, trainee_ids: list[UserId]) -> typing.Optional[BatchModel]:
        """:return: The updated batch, or None if the batch does not exist."""
        try:
            response = self.table.update_item(
                Key={"batchId": batch_id},
                UpdateExpression="SET #trainees = :trainees",
                ConditionExpression="attribute_exists(batchId)",
                ExpressionAttributeNames={"#trainees": "trainees"},
                ExpressionAttributeValues={":trainees": list(dict.fromkeys(trainee_ids))},
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                _LOGGER.info(f"Batch {batch_id} does not exist; trainees not updated.")
                return None
            _LOGGER.error(f"Error updating trainees of batch {batch_id}: {e.response['Error']['Message']}")
            raise
        parsed = self._parse_items([response["Attributes"]])
        return parsed[0] if parsed else None

    def update_batch(self, batch_id: BatchId, changes: BatchInputModel) -> typing.Optional[BatchModel]:
        """
        Replaces a batch's name, course, trainer and dates. The trainee list is kept.

        :return: The updated batch, or None if the batch does not exist.
        """
        values = changes.model_dump(mode="json")
        values["nameLower"] = changes.name.strip().lower()
        item = update_existing_item(self.table, {"batchId": batch_id}, values)
        if item is None:
            return None
        _LOGGER.info(f"Updated batch {batch_id} ('{changes.name}')")
        parsed = self._parse_items([item])
        return parsed[0] if parsed else None

    def delete_batch(self, batch_id: BatchId) -> bool:
        """:return: True if a batch was deleted, False if it did not exist."""
        try:
            response = self.table.delete_item(Key={"batchId": batch_id}, ReturnValues="ALL_OLD")
        except ClientError as e:
            _LOGGER.error(f"Error deleting batch {batch_id}: {e.response['Error']['Message']}", exc_info=True)
            raise
        deleted = bool(response.get("Attributes"))
        if deleted:
            _LOGGER.info(f"Deleted batch {batch_id}")
        return deleted
