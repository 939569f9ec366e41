import logging
import typing

from boto3.dynamodb.conditions import Attr, ConditionBase
from botocore.exceptions import ClientError

_LOGGER = logging.getLogger(__name__)

# DynamoDB BatchGetItem accepts at most 100 keys per request
MAX_KEYS_PER_BATCH = 100
MAX_UNPROCESSED_RETRIES = 5
MAX_WRITE_CONFLICT_RETRIES = 3


def batch_get_items(
    dynamodb_resource: typing.Any,
    table_name: str,
    key_name: str,
    ids: typing.Iterable[str],
) -> list[dict[str, typing.Any]]:
    """
    Fetches items by partition key in chunks, re-requesting any UnprocessedKeys.
    Duplicate ids are fetched once; missing ids are simply absent from the result.
    Order of the returned items is not guaranteed.
    """
    unique_ids = list(dict.fromkeys(ids))
    items: list[dict[str, typing.Any]] = []

    for start in range(0, len(unique_ids), MAX_KEYS_PER_BATCH):
        chunk = unique_ids[start : start + MAX_KEYS_PER_BATCH]
        request: dict[str, typing.Any] = {table_name: {"Keys": [{key_name: item_id} for item_id in chunk]}}

        attempts = 0
        while request:
            response = dynamodb_resource.batch_get_item(RequestItems=request)
            items.extend(response.get("Responses", {}).get(table_name, []))
            request = response.get("UnprocessedKeys") or {}
            attempts += 1
            if request and attempts > MAX_UNPROCESSED_RETRIES:
                _LOGGER.error(f"Giving up on unprocessed keys for {table_name} after {attempts} attempts")
                raise RuntimeError(f"BatchGetItem on {table_name} left keys unprocessed")

    _LOGGER.debug(f"Batch fetched {len(items)}/{len(unique_ids)} items from {table_name}")
    return items


def scan_all(table: typing.Any, **scan_kwargs: typing.Any) -> list[dict[str, typing.Any]]:
    """Runs a (filtered) scan to completion, following LastEvaluatedKey."""
    response = table.scan(**scan_kwargs)
    items = list(response.get("Items", []))
    while "LastEvaluatedKey" in response:
        response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"], **scan_kwargs)
        items.extend(response.get("Items", []))
    return items


def is_conditional_check_failure(e: ClientError) -> bool:
    return e.response["Error"]["Code"] == "ConditionalCheckFailedException"


def build_update_kwargs(values: dict[str, typing.Any]) -> dict[str, typing.Any]:
    """
    update_item arguments that SET every attribute in `values` and REMOVE those given as None.
    """
    set_clauses: list[str] = []
    remove_clauses: list[str] = []
    names: dict[str, str] = {}
    placeholders: dict[str, typing.Any] = {}

    for i, (attribute, value) in enumerate(values.items()):
        names[f"#a{i}"] = attribute
        if value is None:
            remove_clauses.append(f"#a{i}")
        else:
            set_clauses.append(f"#a{i} = :a{i}")
            placeholders[f":a{i}"] = value

    expression = []
    if set_clauses:
        expression.append("SET " + ", ".join(set_clauses))
    if remove_clauses:
        expression.append("REMOVE " + ", ".join(remove_clauses))

    kwargs: dict[str, typing.Any] = {"UpdateExpression": " ".join(expression), "ExpressionAttributeNames": names}
    if placeholders:
        kwargs["ExpressionAttributeValues"] = placeholders
    return kwargs


def update_existing_item(
    table: typing.Any,
    key: dict[str, str],
    values: dict[str, typing.Any],
) -> typing.Optional[dict[str, typing.Any]]:
    """
    Updates some attributes of an item without touching the others. Never creates the item.

    :return: The item after the update, or None if no item has the key.
    """
    key_name = next(iter(key))
    try:
        response = table.update_item(
            Key=key,
            ConditionExpression=f"attribute_exists({key_name})",
            ReturnValues="ALL_NEW",
            **build_update_kwargs(values),
        )
    except ClientError as e:
        if is_conditional_check_failure(e):
            _LOGGER.info(f"No item with {key} in {table.name}; nothing updated.")
            return None
        _LOGGER.error(f"Error updating {key} in {table.name}: {e.response['Error']['Message']}", exc_info=True)
        raise
    return response["Attributes"]


def unchanged_condition(item: dict[str, typing.Any], attributes: typing.Iterable[str]) -> ConditionBase:
    """Condition that only holds while each attribute still has the value it has in `item`."""
    condition: typing.Optional[ConditionBase] = None
    for attribute in attributes:
        clause = Attr(attribute).eq(item[attribute]) if attribute in item else Attr(attribute).not_exists()
        condition = clause if condition is None else condition & clause
    if condition is None:
        raise ValueError("unchanged_condition needs at least one attribute")
    return condition


def rewrite_lists_if_unchanged(
    table: typing.Any,
    key: dict[str, str],
    item: dict[str, typing.Any],
    rewrite: typing.Callable[[dict[str, typing.Any]], typing.Optional[dict[str, typing.Any]]],
) -> bool:
    """
    Read-modify-write of list attributes with optimistic concurrency.

    `rewrite` maps the item as read to the new attribute values, or None when there is nothing
    left to change. The write only lands if those attributes still hold what was read; otherwise
    the item is read again and `rewrite` re-applied.

    :return: True if the item was updated.
    """
    key_name = next(iter(key))
    for _ in range(MAX_WRITE_CONFLICT_RETRIES + 1):
        values = rewrite(item)
        if values is None:
            return False
        try:
            table.update_item(
                Key=key,
                ConditionExpression=Attr(key_name).exists() & unchanged_condition(item, values.keys()),
                **build_update_kwargs(values),
            )
            return True
        except ClientError as e:
            if not is_conditional_check_failure(e):
                raise

        _LOGGER.info(f"{key} in {table.name} changed while being rewritten; reading it again")
        item = table.get_item(Key=key, ConsistentRead=True).get("Item")
        if not item:
            return False

    raise RuntimeError(f"Gave up rewriting {key} in {table.name} after {MAX_WRITE_CONFLICT_RETRIES} conflicts")
