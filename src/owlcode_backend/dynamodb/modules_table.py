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
from owlcode_backend.models.course_models import ModuleInputModel, ModuleModel
from owlcode_backend.utils.base_types import ModuleId, TopicId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ModulesTable:
    """
    Data Abstraction Layer for the Modules DynamoDB table.
    A module may be shared by several courses.

    Table Schema:
      - PK: moduleId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse_items(self, items: list[dict[str, typing.Any]]) -> list[ModuleModel]:
        modules = []
        for item in items:
            try:
                modules.append(ModuleModel.model_validate(item))
            except ValidationError as ve:
                _LOGGER.warning(f"Skipping invalid module item {item.get('moduleId')}: {ve}")
        return modules

    def get_module(self, module_id: ModuleId) -> typing.Optional[ModuleModel]:
        try:
            response = self.table.get_item(Key={"moduleId": module_id})
        except ClientError as e:
            _LOGGER.error(f"Failed to get module {module_id}: {e.response['Error']['Message']}")
            raise
        item = response.get("Item")
        if not item:
            _LOGGER.info(f"No module found for module_id: {module_id}")
            return None
        parsed = self._parse_items([item])
        return parsed[0] if parsed else None

    def get_modules(self, module_ids: typing.Iterable[ModuleId]) -> dict[ModuleId, ModuleModel]:
        """Batch fetches modules, keyed by id. Unknown ids are left out."""
        try:
            items = batch_get_items(self.client, self.table.name, "moduleId", module_ids)
        except ClientError as e:
            _LOGGER.error(f"Failed to batch get modules: {e.response['Error']['Message']}")
            raise
        return {module.moduleId: module for module in self._parse_items(items)}

    def list_modules(self) -> list[ModuleModel]:
        try:
            items = scan_all(self.table)
        except ClientError as e:
            _LOGGER.error(f"Failed to scan modules: {e.response['Error']['Message']}")
            raise
        return sorted(self._parse_items(items), key=lambda module: module.title.lower())

    def save_module(self, module: ModuleModel) -> ModuleModel:
        try:
            self.table.put_item(Item=module.model_dump(mode="json", exclude_none=True))
            _LOGGER.info(f"Saved module {module.moduleId} ('{module.title}')")
            return module
        except ClientError as e:
            _LOGGER.error(f"Error saving module {module.moduleId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def delete_module(self, module_id: ModuleId) -> typing.Optional[ModuleModel]:
        """:return: The deleted module, or None if it did not exist."""
        try:
            response = self.table.delete_item(Key={"moduleId": module_id}, ReturnValues="ALL_OLD")
        except ClientError as e:
            _LOGGER.error(f"Error deleting module {module_id}: {e.response['Error']['Message']}", exc_info=True)
            raise
        old_item = response.get("Attributes")
        if not old_item:
            return None
        _LOGGER.info(f"Deleted module {module_id}")
        parsed = self._parse_items([old_item])
        return parsed[0] if parsed else None

    def update_module(self, module_id: ModuleId, changes: ModuleInputModel) -> typing.Optional[ModuleModel]:
        """:return: The updated module, or None if it does not exist."""
        item = update_existing_item(self.table, {"moduleId": module_id}, changes.model_dump(mode="json"))
        if item is None:
            return None
        _LOGGER.info(f"Updated module {module_id}: {len(changes.topics)} topics")
        parsed = self._parse_items([item])
        return parsed[0] if parsed else None

    def remove_topic_references(self, topic_id: TopicId) -> int:
        """
        Pulls a topic out of every module's topic list without losing concurrent edits.

        :return: Number of modules updated.
        """

        def without_topic(item: dict[str, typing.Any]) -> typing.Optional[dict[str, typing.Any]]:
            topics = item.get("topics") or []
            if topic_id not in topics:
                return None
            return {"topics": [tid for tid in topics if tid != topic_id]}

        try:
            items = scan_all(self.table, FilterExpression=Attr("topics").contains(topic_id))
            modules_updated = sum(
                rewrite_lists_if_unchanged(self.table, {"moduleId": item["moduleId"]}, item, without_topic)
                for item in items
            )
        except ClientError as e:
            _LOGGER.error(f"Failed to remove topic {topic_id} from modules: {e.response['Error']['Message']}")
            raise
        _LOGGER.info(f"Removed topic {topic_id} from {modules_updated} module(s)")
        return modules_updated
