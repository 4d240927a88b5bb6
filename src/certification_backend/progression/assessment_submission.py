import logging
import typing
from datetime import datetime

from certification_backend.cloudwatch.metrics import MetricsManager
from certification_backend.dynamodb.assessment_results_table import AssessmentResultsTable
from certification_backend.dynamodb.curriculum_table import CurriculumTable
from certification_backend.dynamodb.enrollments_table import EnrollmentsTable
from certification_backend.models.assessment_models import (
    AssessmentResultModel,
    SubmissionOutcomeModel,
    SubmitTestRequestModel,
)
from certification_backend.models.curriculum_models import AssessmentModel, ModuleOutlineModel
from certification_backend.models.enrollment_models import LevelScoreModel
from certification_backend.progression.certificate_gate import CertificateGate
from certification_backend.progression.errors import ForbiddenError, InvalidRequestError, NotFoundError
from certification_backend.progression.progress_aggregator import ProgressAggregator, is_level_complete
from certification_backend.progression.scoring import ScoreOutcome, score_answers
from certification_backend.utils.base_types import ModuleId, UserId
from certification_backend.utils.time_utils import parse_iso, to_iso, utc_now

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


def _require_module_id(request: SubmitTestRequestModel) -> ModuleId:
    # Requests built without validation can still lack it
    if request.moduleId is None:
        raise InvalidRequestError(f"moduleId is required for {request.testKind} test {request.testId}.")
    return request.moduleId


class AssessmentSubmissionProcessor:
    """
    Scores subtopic, level and module test submissions and stores one result per user and test.

    Validation and gating happen before anything is written. Once the result is stored it is never
    rolled back: the unlocking and certificate bookkeeping that follows a pass is best-effort and
    is logged on failure, since progress can always be recomputed later.
    """

    def __init__(
        self,
        curriculum_table: CurriculumTable,
        results_table: AssessmentResultsTable,
        enrollments_table: EnrollmentsTable,
        progress_aggregator: ProgressAggregator,
        certificate_gate: CertificateGate,
        metrics_manager: MetricsManager,
        clock: typing.Callable[[], datetime] = utc_now,
    ) -> None:
        self.curriculum_table = curriculum_table
        self.results_table = results_table
        self.enrollments_table = enrollments_table
        self.progress_aggregator = progress_aggregator
        self.certificate_gate = certificate_gate
        self.metrics_manager = metrics_manager
        self.clock = clock

    def _get_test(self, request: SubmitTestRequestModel) -> AssessmentModel:
        test = self.curriculum_table.get_test(request.testId)
        if test is None or not test.isActive or test.testKind != request.testKind:
            raise NotFoundError(f"{request.testKind} test {request.testId} not found.")
        return test

    def _check_parent(self, test: AssessmentModel, request: SubmitTestRequestModel) -> None:
        parent_ids = {"SUB_TOPIC": request.subTopicId, "LEVEL": request.levelId, "MODULE": request.moduleId}
        if test.parentId != parent_ids[request.testKind]:
            raise InvalidRequestError(
                f"Test {test.id} does not belong to {request.testKind.lower()} {parent_ids[request.testKind]}."
            )

    def _check_sub_topic_scope(self, user_id: UserId, test: AssessmentModel, request: SubmitTestRequestModel) -> None:
        scope = self.progress_aggregator.resolve_sub_topic_scope(test.parentId)
        if scope.level.id != request.levelId or scope.module_id != request.moduleId:
            raise InvalidRequestError(f"Sub-topic {request.subTopicId} is not under the given level and module.")

        self.progress_aggregator.require_enrollment(user_id, scope.module_id)
        if not self.progress_aggregator.is_sub_topic_test_unlocked(user_id, scope.sub_topic):
            raise ForbiddenError("Complete all content in this sub-topic before taking its test.")

    def _check_level_scope(self, user_id: UserId, test: AssessmentModel, request: SubmitTestRequestModel) -> None:
        outline = self._get_outline(request)
        level_outline = outline.find_level(test.parentId)
        if level_outline is None:
            raise InvalidRequestError(f"Level {request.levelId} is not part of module {request.moduleId}.")

        enrollment = self.progress_aggregator.require_enrollment(user_id, outline.module.id)
        if not is_level_complete(level_outline, enrollment.completedSubTopics):
            raise ForbiddenError("Complete every sub-topic in this level before taking the level test.")

    def _check_module_scope(self, user_id: UserId, request: SubmitTestRequestModel) -> None:
        outline = self._get_outline(request)
        enrollment = self.progress_aggregator.require_enrollment(user_id, outline.module.id)
        # Recomputed, not read from the cached value.
        progress_percentage = self.progress_aggregator.recompute_progress(user_id, outline.module.id, outline)
        if progress_percentage < 100:
            raise ForbiddenError(
                "Complete the whole module before taking the final test.",
                details={"progressPercentage": progress_percentage},
            )

        if enrollment.examDate and self.clock() < parse_iso(enrollment.examDate):
            raise ForbiddenError("The final test is not open yet.", details={"examDate": enrollment.examDate})

    def _get_outline(self, request: SubmitTestRequestModel) -> ModuleOutlineModel:
        return self.progress_aggregator.require_module_outline(_require_module_id(request))

    def submit(self, user_id: UserId, request: SubmitTestRequestModel) -> SubmissionOutcomeModel:
        test = self._get_test(request)
        self._check_parent(test, request)
        module_id = _require_module_id(request)

        if request.testKind == "SUB_TOPIC":
            self._check_sub_topic_scope(user_id, test, request)
        elif request.testKind == "LEVEL":
            self._check_level_scope(user_id, test, request)
        else:
            self._check_module_scope(user_id, request)

        questions = self.curriculum_table.get_questions(test.questionIds)
        outcome = score_answers(test, questions, request.answers)

        now = self.clock()
        result = self.results_table.upsert_result(
            user_id=user_id,
            test_kind=request.testKind,
            test_id=test.id,
            module_id=module_id,
            level_id=request.levelId if request.testKind != "MODULE" else None,
            sub_topic_id=request.subTopicId if request.testKind == "SUB_TOPIC" else None,
            score=outcome.score,
            total_questions=outcome.total_questions,
            correct_answers=outcome.correct_answers,
            answers=request.answers,
            passed=outcome.passed,
            time_spent=request.timeSpent,
            completed_at=to_iso(now),
        )
        self.metrics_manager.set_dimension("TestKind", result.testKind)
        self.metrics_manager.put_metric("TestSubmitted", 1)
        if outcome.passed:
            self.metrics_manager.put_metric("TestPassed", 1)

        try:
            self._apply_outcome(user_id, result, outcome, now)
        except Exception as e:
            _LOGGER.error(
                f"Bookkeeping after {result.testKey} failed for user {user_id}; result kept: {e}", exc_info=True
            )
            self.metrics_manager.put_metric("CascadeFailure", 1)

        return SubmissionOutcomeModel(
            testKind=result.testKind,
            testId=result.testId,
            score=result.score,
            passed=result.passed,
            correctAnswers=result.correctAnswers,
            totalQuestions=result.totalQuestions,
            passingScore=test.passingScore,
            attempts=result.attempts,
            completedAt=result.completedAt,
        )

    def _apply_outcome(
        self, user_id: UserId, result: AssessmentResultModel, outcome: ScoreOutcome, now: datetime
    ) -> None:
        if result.testKind == "LEVEL" and result.levelId:
            # Latest attempt, pass or fail, for level mastery reporting. Progress is subtopic-driven.
            self.enrollments_table.record_level_score(
                user_id,
                result.moduleId,
                result.levelId,
                LevelScoreModel(
                    score=outcome.score,
                    passed=outcome.passed,
                    totalQuestions=outcome.total_questions,
                    correctAnswers=outcome.correct_answers,
                    completedAt=result.completedAt,
                ),
            )

        if not outcome.passed:
            _LOGGER.info(f"User {user_id} did not pass {result.testKey} ({outcome.score}%). Nothing unlocked.")
            return

        if result.testKind == "SUB_TOPIC" and result.subTopicId:
            self.progress_aggregator.record_sub_topic_test_pass(user_id, result.subTopicId)
        elif result.testKind == "MODULE":
            self.enrollments_table.record_exam_pass(user_id, result.moduleId, outcome.score, result.completedAt)
            self.certificate_gate.arm(user_id, result.moduleId, outcome.score, now)
