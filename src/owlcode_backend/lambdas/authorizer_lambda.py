import logging
import typing

from owlcode_backend.cloudwatch.metrics import MetricsManager
from owlcode_backend.dynamodb.secrets_table import SecretsTable
from owlcode_backend.utils.apig_utils import ErrorCode, create_error_response
from owlcode_backend.utils.aws_env_vars import get_aws_region, get_secrets_table_name
from owlcode_backend.utils.base_types import Role
from owlcode_backend.utils.jwt_utils import JwtWrapper

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_DENY_ALL_ARN = "arn:aws:execute-api:*:*:*/*/*"


def _generate_iam_policy(principal_id: str, effect: str, resource: str, context: dict) -> dict:
    """
    Generates the IAM policy required by API Gateway Lambda authorizers.
    The 'resource' should be the ARN of the API Gateway endpoint.
    """
    return {
        "principalId": principal_id,
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [{"Action": "execute-api:Invoke", "Effect": effect, "Resource": resource}],
        },
        "context": context,
    }


class AuthorizerLambda:
    def __init__(
        self,
        jwt_wrapper: JwtWrapper,
        secrets_table: SecretsTable,
        metrics_manager: MetricsManager,
    ) -> None:
        self.jwt_wrapper = jwt_wrapper
        self.secrets_table = secrets_table
        self.metrics_manager = metrics_manager

    def _deny(self, resource_arn: str) -> dict:
        self.metrics_manager.put_metric("AuthorizationFailure", 1)
        return _generate_iam_policy("user", "Deny", resource_arn, {})

    def handle(self, event: dict) -> dict:
        try:
            aws_account_id = event["methodArn"].split(":")[4]
            api_id = event["requestContext"]["apiId"]
            stage = event["requestContext"]["stage"]

            # Wildcard so the cached policy covers every route of the stage
            resource_arn = f"arn:aws:execute-api:{get_aws_region()}:{aws_account_id}:{api_id}/{stage}/*"
        except (KeyError, IndexError, ValueError):
            _LOGGER.error("Could not construct resource ARN from event/context.", exc_info=True)
            return _generate_iam_policy("user", "Deny", _DENY_ALL_ARN, {})

        try:
            token = event["headers"]["authorization"].split(" ")[1]
        except (KeyError, IndexError, AttributeError):
            _LOGGER.warning("Authorization token missing or malformed.")
            return self._deny(resource_arn)

        try:
            payload = self.jwt_wrapper.verify_token(token, self.secrets_table)
        except Exception as e:
            _LOGGER.error(f"Error during token validation: {e}", exc_info=True)
            return self._deny(resource_arn)

        if not payload or "sub" not in payload:
            _LOGGER.warning("Token is invalid or expired.")
            return self._deny(resource_arn)

        role = payload.get("role")
        if role not in typing.get_args(Role):
            _LOGGER.warning(f"Token for user {payload['sub']} carries unknown role: {role}")
            return self._deny(resource_arn)

        user_id = payload["sub"]
        _LOGGER.info(f"Token validated successfully for user: {user_id} ({role})")
        self.metrics_manager.put_metric("AuthorizationSuccess", 1)
        # Downstream lambdas read this from event['requestContext']['authorizer']['lambda']
        return _generate_iam_policy(user_id, "Allow", resource_arn, {"sub": user_id, "role": role})


def authorizer_lambda_handler(event: dict, context: typing.Any) -> dict:
    """
    Lambda Authorizer for API Gateway. Validates the access token in the Authorization
    header and forwards the user id and role to the downstream lambdas.
    """
    _LOGGER.info("Authorizer lambda handler invoked.")
    metrics_manager = MetricsManager("OwlCode/Authentication")

    try:
        handler = AuthorizerLambda(
            jwt_wrapper=JwtWrapper(),
            secrets_table=SecretsTable(get_secrets_table_name()),
            metrics_manager=metrics_manager,
        )
        return handler.handle(event)
    except Exception as e:
        _LOGGER.critical(f"Critical error in authorizer_lambda_handler: {e}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()
