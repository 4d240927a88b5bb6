import json
import logging
import typing

from pydantic import ValidationError

from certification_backend.cloudwatch.metrics import MetricsManager
from certification_backend.dynamodb.assessment_results_table import AssessmentResultsTable
from certification_backend.dynamodb.content_progress_table import ContentProgressTable
from certification_backend.dynamodb.curriculum_table import CurriculumTable
from certification_backend.dynamodb.enrollments_table import EnrollmentsTable
from certification_backend.dynamodb.user_profile_table import UserProfileTable
from certification_backend.models.assessment_models import (
    TEST_KINDS,
    ListOfAssessmentResultsResponseModel,
    SubmitTestRequestModel,
)
from certification_backend.progression.certificate_gate import CertificateGate
from certification_backend.progression.errors import (
    CertificationError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    create_certification_error_response,
)
from certification_backend.progression.progress_aggregator import ProgressAggregator
from certification_backend.progression.assessment_submission import AssessmentSubmissionProcessor
from certification_backend.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_event_body,
    get_method,
    get_path,
    get_query_string_parameters,
    get_user_id_from_event,
    get_user_role_from_event,
)
from certification_backend.utils.aws_env_vars import (
    get_certificate_base_url,
    get_certificate_min_exam_score,
    get_content_progress_table_name,
    get_curriculum_table_name,
    get_enrollments_table_name,
    get_test_results_table_name,
    get_user_profile_table_name,
)
from certification_backend.utils.base_types import RoleName, TestId, TestKind, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

# Roles allowed to read other users' test results.
RESULT_REVIEWER_ROLES: frozenset[RoleName] = frozenset({RoleName("admin"), RoleName("master_practitioner")})


def parse_test_kind(value: str) -> TestKind:
    """Accepts 'SUB_TOPIC', 'sub_topic' or 'sub-topic' style values."""
    normalized = value.strip().upper().replace("-", "_")
    if normalized not in TEST_KINDS:
        raise InvalidRequestError(f"Unknown test type '{value}'. Must be one of: {', '.join(TEST_KINDS)}.")
    return typing.cast(TestKind, normalized)


class AssessmentResultsApiHandler:
    def __init__(
        self,
        results_table: AssessmentResultsTable,
        submission_processor: AssessmentSubmissionProcessor,
    ) -> None:
        self.results_table = results_table
        self.submission_processor = submission_processor

    def _resolve_target_user(self, user_id: UserId, event: dict) -> UserId:
        requested = get_query_string_parameters(event).get("userId")
        if not requested or requested == user_id:
            return user_id

        role = get_user_role_from_event(event)
        if role not in RESULT_REVIEWER_ROLES:
            _LOGGER.warning(f"Forbidden: user {user_id} with role {role} requested results of {requested}.")
            raise ForbiddenError("Not allowed to view other users' test results.")
        return UserId(requested)

    def _handle_submit(self, user_id: UserId, event: dict) -> dict:
        if not event.get("body"):
            raise InvalidRequestError("Missing request body.")

        raw_payload = json.loads(get_event_body(event))
        request = SubmitTestRequestModel.model_validate(raw_payload)
        _LOGGER.info(f"User {user_id} submitting {request.testKind} test {request.testId}")

        outcome = self.submission_processor.submit(user_id, request)
        return format_lambda_response(200, outcome.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_list_results(self, user_id: UserId, event: dict) -> dict:
        target_user_id = self._resolve_target_user(user_id, event)
        type_param = get_query_string_parameters(event).get("type", "all")
        test_kind = None if type_param.lower() == "all" else parse_test_kind(type_param)

        results = self.results_table.get_results_for_user(target_user_id, test_kind=test_kind)
        response_model = ListOfAssessmentResultsResponseModel(results=results)
        return format_lambda_response(200, response_model.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_get_result(self, user_id: UserId, test_kind: TestKind, test_id: TestId, event: dict) -> dict:
        target_user_id = self._resolve_target_user(user_id, event)
        result = self.results_table.get_result(target_user_id, test_kind, test_id)
        if result is None:
            raise NotFoundError(f"No result for {test_kind} test {test_id}.")
        return format_lambda_response(200, result.model_dump(mode="json", exclude_none=True), event=event)

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        path_parts = path.strip("/").split("/")
        _LOGGER.info(f"Received method: {http_method}, path: {path}, user_id: {user_id}")

        try:
            if path_parts[0] != "test-results":
                _LOGGER.warning(f"Unsupported path: {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

            if len(path_parts) == 1:
                if http_method == "POST":
                    return self._handle_submit(user_id, event)
                elif http_method == "GET":
                    return self._handle_list_results(user_id, event)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            # GET /test-results/{testKind}/{testId}
            elif len(path_parts) == 3 and http_method == "GET":
                return self._handle_get_result(user_id, parse_test_kind(path_parts[1]), TestId(path_parts[2]), event)

            else:
                _LOGGER.warning(f"Unsupported path or method: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

        except CertificationError as e:
            _LOGGER.warning(f"{type(e).__name__} for user {user_id} on {http_method} {path}: {e.message}")
            return create_certification_error_response(e, event=event)
        except json.JSONDecodeError:
            _LOGGER.warning("Invalid JSON in request body.")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, "Invalid JSON format in request body.", event=event
            )
        except ValidationError as ve:
            _LOGGER.warning(f"Invalid request payload: {ve.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR,
                "Invalid request payload.",
                details=json.loads(ve.json(include_url=False)),
                event=event,
            )
        except Exception as e:
            _LOGGER.error(
                f"Unexpected error in AssessmentResultsApiHandler for user {user_id}: {str(e)}", exc_info=True
            )
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def assessment_results_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"assessment_results_lambda_handler invoked. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager("Certification/Assessments")

    try:
        curriculum_table = CurriculumTable(get_curriculum_table_name())
        enrollments_table = EnrollmentsTable(get_enrollments_table_name())
        results_table = AssessmentResultsTable(get_test_results_table_name())
        progress_aggregator = ProgressAggregator(
            curriculum_table=curriculum_table,
            content_progress_table=ContentProgressTable(get_content_progress_table_name()),
            enrollments_table=enrollments_table,
        )
        certificate_gate = CertificateGate(
            enrollments_table=enrollments_table,
            user_profile_table=UserProfileTable(get_user_profile_table_name()),
            min_exam_score=get_certificate_min_exam_score(),
            certificate_base_url=get_certificate_base_url(),
        )
        api_handler = AssessmentResultsApiHandler(
            results_table=results_table,
            submission_processor=AssessmentSubmissionProcessor(
                curriculum_table=curriculum_table,
                results_table=results_table,
                enrollments_table=enrollments_table,
                progress_aggregator=progress_aggregator,
                certificate_gate=certificate_gate,
                metrics_manager=metrics_manager,
            ),
        )
        return api_handler.handle(event)

    except Exception as e:
        _LOGGER.critical(f"Error in global handler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()
