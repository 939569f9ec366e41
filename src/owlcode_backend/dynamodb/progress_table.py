import logging
import typing

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import ValidationError

from owlcode_backend.models.progress_models import TraineeProgressModel
from owlcode_backend.utils.base_types import BatchId, ProblemId, ProblemStatus, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ProgressTable:
    """
    Data Abstraction Layer for the trainee Progress DynamoDB table.

    Table Schema:
      - PK: batchId
      - SK: traineeId
      - completedAssignments: String Set of solved problem ids

    Items are created lazily by the first toggle. Toggles use DynamoDB's ADD/DELETE set
    actions so concurrent toggles of different problems can't overwrite each other.
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_progress(self, batch_id: BatchId, trainee_id: UserId) -> typing.Optional[TraineeProgressModel]:
        """
        :return: The trainee's progress in the batch, or None if they have never toggled a problem.
        """
        _LOGGER.debug(f"Fetching progress for trainee {trainee_id} in batch {batch_id}")
        try:
            response = self.table.get_item(Key={"batchId": batch_id, "traineeId": trainee_id})
            item_data = response.get("Item")
            if item_data:
                return TraineeProgressModel.model_validate(item_data)
            _LOGGER.debug(f"No progress found for trainee {trainee_id} in batch {batch_id}")
            return None
        except ClientError as e:
            _LOGGER.error(f"Failed for trainee {trainee_id}, batch {batch_id}: {e.response['Error']['Message']}")
            raise
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate progress for trainee {trainee_id}, batch {batch_id}: {ve}", exc_info=True)
            return None

    def get_completed_problem_ids(self, batch_id: BatchId, trainee_id: UserId) -> set[ProblemId]:
        progress = self.get_progress(batch_id, trainee_id)
        return set(progress.completedAssignments) if progress else set()

    def set_problem_status(
        self,
        batch_id: BatchId,
        trainee_id: UserId,
        problem_id: ProblemId,
        status: ProblemStatus,
    ) -> set[ProblemId]:
        """
        Adds (Solved) or removes (Unsolved) a problem from the trainee's completed set in one
        atomic update. Repeating a toggle is a no-op.

        :return: The completed set after the update.
        """
        action = "ADD" if status == "Solved" else "DELETE"
        _LOGGER.info(f"Marking problem {problem_id} {status} for trainee {trainee_id} in batch {batch_id}")
        try:
            response = self.table.update_item(
                Key={"batchId": batch_id, "traineeId": trainee_id},
                UpdateExpression=f"{action} #completed :problem",
                ExpressionAttributeNames={"#completed": "completedAssignments"},
                ExpressionAttributeValues={":problem": {problem_id}},
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            _LOGGER.error(
                f"Failed to mark problem {problem_id} for trainee {trainee_id}: {e.response['Error']['Message']}",
                exc_info=True,
            )
            raise

        # DynamoDB drops a string set attribute once its last element is deleted
        completed = response.get("Attributes", {}).get("completedAssignments", set())
        return {ProblemId(pid) for pid in completed}

    def delete_batch_progress(self, batch_id: BatchId) -> int:
        """
        Deletes every trainee's progress in a batch.

        :return: Number of progress items deleted.
        """
        query_kwargs: dict[str, typing.Any] = {
            "KeyConditionExpression": Key("batchId").eq(batch_id),
            "ProjectionExpression": "batchId, traineeId",
        }
        deleted = 0
        try:
            with self.table.batch_writer() as batch:
                while True:
                    response = self.table.query(**query_kwargs)
                    for item in response.get("Items", []):
                        batch.delete_item(Key={"batchId": item["batchId"], "traineeId": item["traineeId"]})
                        deleted += 1
                    if "LastEvaluatedKey" not in response:
                        break
                    query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to delete progress of batch {batch_id}: {e.response['Error']['Message']}")
            raise
        _LOGGER.info(f"Deleted progress of {deleted} trainee(s) in batch {batch_id}")
        return deleted
