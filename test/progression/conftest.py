import typing
from unittest.mock import Mock

import pytest
from moto import mock_aws

from certification_backend.dynamodb.assessment_results_table import AssessmentResultsTable
from certification_backend.dynamodb.content_progress_table import ContentProgressTable
from certification_backend.dynamodb.curriculum_table import CurriculumTable
from certification_backend.dynamodb.enrollments_table import EnrollmentsTable
from certification_backend.dynamodb.user_profile_table import UserProfileTable
from certification_backend.progression.assessment_submission import AssessmentSubmissionProcessor
from certification_backend.progression.certificate_gate import CertificateGate
from certification_backend.progression.progress_aggregator import ProgressAggregator
from certification_backend.utils.base_types import ModuleId, UserId
from certification_backend.utils.time_utils import to_iso

from ..test_utils.clock import FakeClock
from ..test_utils.tables import (
    CONTENT_PROGRESS_TABLE_NAME,
    CURRICULUM_TABLE_NAME,
    ENROLLMENTS_TABLE_NAME,
    TEST_RESULTS_TABLE_NAME,
    USER_PROFILE_TABLE_NAME,
    CurriculumSeeder,
    create_all_tables,
)

USER_ID = UserId("learner-1")
MODULE_ID = ModuleId("m1")


class CertificationStack(typing.NamedTuple):
    seeder: CurriculumSeeder
    clock: FakeClock
    curriculum_table: CurriculumTable
    content_progress_table: ContentProgressTable
    enrollments_table: EnrollmentsTable
    results_table: AssessmentResultsTable
    user_profile_table: UserProfileTable
    progress_aggregator: ProgressAggregator
    certificate_gate: CertificateGate
    metrics_manager: Mock
    submission_processor: AssessmentSubmissionProcessor

    def enroll(self, user_id: UserId = USER_ID, module_id: ModuleId = MODULE_ID, paid: bool = True) -> None:
        self.enrollments_table.create_enrollment(user_id, module_id, to_iso(self.clock()))
        if paid:
            self.enrollments_table.mark_payment_completed(user_id, module_id)


@pytest.fixture
def stack(aws_credentials) -> typing.Iterator[CertificationStack]:
    """All tables mocked and every progression component wired together around one fake clock."""
    with mock_aws():
        create_all_tables()
        clock = FakeClock()
        curriculum_table = CurriculumTable(CURRICULUM_TABLE_NAME)
        content_progress_table = ContentProgressTable(CONTENT_PROGRESS_TABLE_NAME)
        enrollments_table = EnrollmentsTable(ENROLLMENTS_TABLE_NAME)
        results_table = AssessmentResultsTable(TEST_RESULTS_TABLE_NAME)
        user_profile_table = UserProfileTable(USER_PROFILE_TABLE_NAME)
        metrics_manager = Mock()

        progress_aggregator = ProgressAggregator(
            curriculum_table=curriculum_table,
            content_progress_table=content_progress_table,
            enrollments_table=enrollments_table,
            clock=clock,
        )
        certificate_gate = CertificateGate(
            enrollments_table=enrollments_table,
            user_profile_table=user_profile_table,
            clock=clock,
        )
        submission_processor = AssessmentSubmissionProcessor(
            curriculum_table=curriculum_table,
            results_table=results_table,
            enrollments_table=enrollments_table,
            progress_aggregator=progress_aggregator,
            certificate_gate=certificate_gate,
            metrics_manager=metrics_manager,
            clock=clock,
        )
        yield CertificationStack(
            seeder=CurriculumSeeder(),
            clock=clock,
            curriculum_table=curriculum_table,
            content_progress_table=content_progress_table,
            enrollments_table=enrollments_table,
            results_table=results_table,
            user_profile_table=user_profile_table,
            progress_aggregator=progress_aggregator,
            certificate_gate=certificate_gate,
            metrics_manager=metrics_manager,
            submission_processor=submission_processor,
        )
