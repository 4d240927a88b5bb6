import logging
import typing

from certification_backend.cloudwatch.metrics import MetricsManager
from certification_backend.dynamodb.assessment_results_table import AssessmentResultsTable
from certification_backend.dynamodb.curriculum_table import CurriculumTable
from certification_backend.dynamodb.enrollments_table import EnrollmentsTable
from certification_backend.dynamodb.user_profile_table import UserProfileTable
from certification_backend.progression.certificate_data import CertificateDataBuilder
from certification_backend.progression.certificate_gate import CertificateGate
from certification_backend.progression.errors import CertificationError, create_certification_error_response
from certification_backend.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_method,
    get_path,
    get_user_id_from_event,
)
from certification_backend.utils.aws_env_vars import (
    get_certificate_base_url,
    get_certificate_min_exam_score,
    get_curriculum_table_name,
    get_enrollments_table_name,
    get_test_results_table_name,
    get_user_profile_table_name,
)
from certification_backend.utils.base_types import ModuleId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class CertificateApiHandler:
    def __init__(
        self,
        certificate_gate: CertificateGate,
        certificate_data_builder: CertificateDataBuilder,
        metrics_manager: MetricsManager,
    ) -> None:
        self.certificate_gate = certificate_gate
        self.certificate_data_builder = certificate_data_builder
        self.metrics_manager = metrics_manager

    def _handle_get_status(self, user_id: UserId, module_id: typing.Optional[ModuleId], event: dict) -> dict:
        status = self.certificate_gate.get_certificate_status(user_id, module_id)
        return format_lambda_response(200, status.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_issue(self, user_id: UserId, module_id: typing.Optional[ModuleId], event: dict) -> dict:
        issued = self.certificate_gate.issue_certificate(user_id, module_id)
        if not issued.alreadyIssued:
            self.metrics_manager.put_metric("CertificateIssued", 1)
        return format_lambda_response(200, issued.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_get_certificate_data(self, user_id: UserId, event: dict) -> dict:
        data = self.certificate_data_builder.build(user_id)
        return format_lambda_response(200, data.model_dump(mode="json", exclude_none=True), event=event)

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        path_parts = path.strip("/").split("/")
        _LOGGER.info(f"Received method: {http_method}, path: {path}, user_id: {user_id}")

        try:
            if http_method == "GET" and path == "/certificate-data":
                return self._handle_get_certificate_data(user_id, event)

            elif path_parts[0] != "certificate":
                _LOGGER.warning(f"Unsupported path: {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

            # GET /certificate and GET /certificate/{moduleId}
            elif http_method == "GET" and len(path_parts) in (1, 2):
                module_id = ModuleId(path_parts[1]) if len(path_parts) == 2 else None
                return self._handle_get_status(user_id, module_id, event)

            # POST /certificate/issue and POST /certificate/{moduleId}/issue
            elif http_method == "POST" and path_parts[-1] == "issue" and len(path_parts) in (2, 3):
                module_id = ModuleId(path_parts[1]) if len(path_parts) == 3 else None
                return self._handle_issue(user_id, module_id, event)

            else:
                _LOGGER.warning(f"Unsupported path or method: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

        except CertificationError as e:
            _LOGGER.warning(f"{type(e).__name__} for user {user_id} on {http_method} {path}: {e.message}")
            return create_certification_error_response(e, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in CertificateApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def certificate_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"certificate_lambda_handler invoked. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager("Certification/Certificates")

    try:
        curriculum_table = CurriculumTable(get_curriculum_table_name())
        enrollments_table = EnrollmentsTable(get_enrollments_table_name())
        api_handler = CertificateApiHandler(
            certificate_gate=CertificateGate(
                enrollments_table=enrollments_table,
                user_profile_table=UserProfileTable(get_user_profile_table_name()),
                min_exam_score=get_certificate_min_exam_score(),
                certificate_base_url=get_certificate_base_url(),
            ),
            certificate_data_builder=CertificateDataBuilder(
                curriculum_table=curriculum_table,
                enrollments_table=enrollments_table,
                results_table=AssessmentResultsTable(get_test_results_table_name()),
            ),
            metrics_manager=metrics_manager,
        )
        return api_handler.handle(event)

    except Exception as e:
        _LOGGER.critical(f"Error in global handler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()
