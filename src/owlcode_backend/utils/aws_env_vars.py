import os


def _get_resource_by_env_var(env_var: str) -> str:
    table_name = os.environ.get(env_var)
    if not table_name:
        raise ValueError(f"Missing environment variable: {env_var}")
    return table_name


def get_aws_region() -> str:
    return _get_resource_by_env_var("AWS_REGION")


def get_courses_table_name() -> str:
    return _get_resource_by_env_var("COURSES_TABLE_NAME")


def get_modules_table_name() -> str:
    return _get_resource_by_env_var("MODULES_TABLE_NAME")


def get_topics_table_name() -> str:
    return _get_resource_by_env_var("TOPICS_TABLE_NAME")


def get_problems_table_name() -> str:
    return _get_resource_by_env_var("PROBLEMS_TABLE_NAME")


def get_batches_table_name() -> str:
    return _get_resource_by_env_var("BATCHES_TABLE_NAME")


def get_progress_table_name() -> str:
    return _get_resource_by_env_var("PROGRESS_TABLE_NAME")


def get_topic_notes_table_name() -> str:
    return _get_resource_by_env_var("TOPIC_NOTES_TABLE_NAME")


def get_secrets_table_name() -> str:
    return _get_resource_by_env_var("SECRETS_TABLE_NAME")
