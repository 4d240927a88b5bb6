import logging
import typing

from certification_backend.dynamodb.content_progress_table import ContentProgressTable
from certification_backend.dynamodb.curriculum_table import CurriculumTable
from certification_backend.dynamodb.enrollments_table import EnrollmentsTable
from certification_backend.models.enrollment_models import (
    EnrollmentSummaryModel,
    ListOfEnrollmentsResponseModel,
)
from certification_backend.progression.errors import (
    CertificationError,
    ConflictError,
    InternalError,
    NotFoundError,
    create_certification_error_response,
)
from certification_backend.progression.progress_aggregator import ProgressAggregator
from certification_backend.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_method,
    get_path,
    get_user_id_from_event,
)
from certification_backend.utils.aws_env_vars import (
    get_content_progress_table_name,
    get_curriculum_table_name,
    get_enrollments_table_name,
)
from certification_backend.utils.base_types import ContentId, ModuleId, SubTopicId, UserId
from certification_backend.utils.time_utils import to_iso

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ProgressApiHandler:
    def __init__(
        self,
        curriculum_table: CurriculumTable,
        enrollments_table: EnrollmentsTable,
        progress_aggregator: ProgressAggregator,
    ) -> None:
        self.curriculum_table = curriculum_table
        self.enrollments_table = enrollments_table
        self.progress_aggregator = progress_aggregator

    def _handle_enroll(self, user_id: UserId, module_id: ModuleId, event: dict) -> dict:
        module = self.curriculum_table.get_module(module_id)
        if module is None or not module.isActive:
            raise NotFoundError(f"Module {module_id} not found or not active.")

        enrolled_at = to_iso(self.progress_aggregator.clock())
        if not self.enrollments_table.create_enrollment(user_id, module_id, enrolled_at):
            raise ConflictError(f"Already enrolled in module {module_id}.")

        enrollment = self.enrollments_table.get_enrollment(user_id, module_id, consistent_read=True)
        if enrollment is None:
            raise InternalError(f"Enrollment in module {module_id} was created but could not be read back.")
        summary = EnrollmentSummaryModel(
            moduleId=module_id,
            moduleTitle=module.title,
            paymentStatus=enrollment.paymentStatus,
            progressPercentage=enrollment.progressPercentage,
            enrolledAt=enrollment.enrolledAt,
        )
        return format_lambda_response(201, summary.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_list_enrollments(self, user_id: UserId, event: dict) -> dict:
        summaries: list[EnrollmentSummaryModel] = []
        for enrollment in self.enrollments_table.get_enrollments_for_user(user_id):
            module = self.curriculum_table.get_module(enrollment.moduleId)
            summaries.append(
                EnrollmentSummaryModel(
                    moduleId=enrollment.moduleId,
                    moduleTitle=module.title if module else None,
                    paymentStatus=enrollment.paymentStatus,
                    progressPercentage=enrollment.progressPercentage,
                    enrolledAt=enrollment.enrolledAt,
                    examDate=enrollment.examDate,
                    examCompleted=enrollment.examCompleted,
                    completedAt=enrollment.completedAt,
                )
            )

        response_model = ListOfEnrollmentsResponseModel(enrollments=summaries)
        return format_lambda_response(200, response_model.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_get_progress(self, user_id: UserId, module_id: ModuleId, event: dict) -> dict:
        progress = self.progress_aggregator.get_enrollment_progress(user_id, module_id)
        return format_lambda_response(200, progress.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_complete_content(self, user_id: UserId, content_id: ContentId, event: dict) -> dict:
        state = self.progress_aggregator.mark_content_complete(user_id, content_id)
        return format_lambda_response(200, state.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_complete_sub_topic(self, user_id: UserId, sub_topic_id: SubTopicId, event: dict) -> dict:
        progress = self.progress_aggregator.mark_sub_topic_complete(user_id, sub_topic_id)
        return format_lambda_response(200, progress.model_dump(mode="json", exclude_none=True), event=event)

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        path_parts = path.strip("/").split("/")
        _LOGGER.info(f"Received method: {http_method}, path: {path}, user_id: {user_id}")

        try:
            # POST /modules/{moduleId}/enroll
            if (
                http_method == "POST"
                and len(path_parts) == 3
                and path_parts[0] == "modules"
                and path_parts[2] == "enroll"
            ):
                return self._handle_enroll(user_id, ModuleId(path_parts[1]), event)

            elif http_method == "GET" and path == "/enrollments":
                return self._handle_list_enrollments(user_id, event)

            # GET /enrollments/{moduleId}/progress
            elif (
                http_method == "GET"
                and len(path_parts) == 3
                and path_parts[0] == "enrollments"
                and path_parts[2] == "progress"
            ):
                return self._handle_get_progress(user_id, ModuleId(path_parts[1]), event)

            # POST /contents/{contentId}/complete
            elif (
                http_method == "POST"
                and len(path_parts) == 3
                and path_parts[0] == "contents"
                and path_parts[2] == "complete"
            ):
                return self._handle_complete_content(user_id, ContentId(path_parts[1]), event)

            # POST /sub-topics/{subTopicId}/complete
            elif (
                http_method == "POST"
                and len(path_parts) == 3
                and path_parts[0] == "sub-topics"
                and path_parts[2] == "complete"
            ):
                return self._handle_complete_sub_topic(user_id, SubTopicId(path_parts[1]), event)

            else:
                _LOGGER.warning(f"Unsupported path or method: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

        except CertificationError as e:
            _LOGGER.warning(f"{type(e).__name__} for user {user_id} on {http_method} {path}: {e.message}")
            return create_certification_error_response(e, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in ProgressApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def progress_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"progress_lambda_handler invoked. Method: {get_method(event)}, Path: {get_path(event)}")

    try:
        curriculum_table = CurriculumTable(get_curriculum_table_name())
        enrollments_table = EnrollmentsTable(get_enrollments_table_name())
        api_handler = ProgressApiHandler(
            curriculum_table=curriculum_table,
            enrollments_table=enrollments_table,
            progress_aggregator=ProgressAggregator(
                curriculum_table=curriculum_table,
                content_progress_table=ContentProgressTable(get_content_progress_table_name()),
                enrollments_table=enrollments_table,
            ),
        )
        return api_handler.handle(event)

    except Exception as e:
        _LOGGER.critical(f"Error in global handler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
