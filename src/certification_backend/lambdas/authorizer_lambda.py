import logging
import os
import typing

from certification_backend.cloudwatch.metrics import MetricsManager
from certification_backend.dynamodb.secrets_table import SecretsTable
from certification_backend.utils.apig_utils import ErrorCode, create_error_response
from certification_backend.utils.aws_env_vars import get_secrets_table_name
from certification_backend.utils.jwt_utils import JwtWrapper

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_DENY_ALL_RESOURCE = "arn:aws:execute-api:*:*:*/*/*"


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


def _to_authorizer_context(payload: dict) -> dict[str, typing.Union[str, int, float, bool]]:
    # API Gateway only forwards primitive context values; nested claims are dropped.
    return {key: value for key, value in payload.items() if isinstance(value, (str, int, float, bool))}


def _resource_arn(event: dict) -> typing.Optional[str]:
    """Allows every route of the calling API stage, so the policy can be cached across routes."""
    try:
        aws_account_id = event["methodArn"].split(":")[4]
        api_id = event["requestContext"]["apiId"]
        stage = event["requestContext"]["stage"]
    except (KeyError, IndexError):
        return None
    return f"arn:aws:execute-api:{os.environ.get('AWS_REGION')}:{aws_account_id}:{api_id}/{stage}/*"


def _bearer_token(event: dict) -> typing.Optional[str]:
    scheme, _, token = (event.get("headers") or {}).get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


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

    def _deny(self, resource_arn: str, reason: str) -> dict:
        _LOGGER.warning(f"Denying request: {reason}")
        self.metrics_manager.put_metric("AuthorizationFailure", 1)
        return _generate_iam_policy("user", "Deny", resource_arn, {})

    def handle(self, event: dict) -> dict:
        resource_arn = _resource_arn(event)
        if resource_arn is None:
            _LOGGER.error("Could not construct resource ARN from event.")
            return _generate_iam_policy("user", "Deny", _DENY_ALL_RESOURCE, {})

        token = _bearer_token(event)
        if token is None:
            return self._deny(resource_arn, "authorization token missing or malformed.")

        payload = self.jwt_wrapper.verify_token(token, self.secrets_table)
        if not payload or "sub" not in payload:
            return self._deny(resource_arn, "token is invalid or expired.")

        user_id = str(payload["sub"])
        _LOGGER.info(f"Token validated for user {user_id} with role {payload.get('role')}")
        self.metrics_manager.put_metric("AuthorizationSuccess", 1)
        # Downstream lambdas read this from event['requestContext']['authorizer']['lambda'].
        return _generate_iam_policy(user_id, "Allow", resource_arn, _to_authorizer_context(payload))


def authorizer_lambda_handler(event: dict, context: typing.Any) -> dict:
    """Validates the bearer access token in the Authorization header for every API route."""
    _LOGGER.info("Authorizer lambda handler invoked.")
    metrics_manager = MetricsManager("Certification/Authentication")

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
