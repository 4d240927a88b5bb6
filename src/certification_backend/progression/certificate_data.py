import logging

from certification_backend.dynamodb.assessment_results_table import AssessmentResultsTable
from certification_backend.dynamodb.curriculum_table import CurriculumTable
from certification_backend.dynamodb.enrollments_table import EnrollmentsTable
from certification_backend.models.assessment_models import AssessmentResultModel, make_test_key
from certification_backend.models.certificate_models import (
    CertificateDataResponseModel,
    LevelScoreSummaryModel,
    LevelTestSummaryModel,
    ModuleScoreSummaryModel,
    SubTopicScoreSummaryModel,
)
from certification_backend.models.curriculum_models import LevelOutlineModel, ModuleOutlineModel
from certification_backend.models.enrollment_models import EnrollmentModel
from certification_backend.progression.scoring import round_half_up
from certification_backend.utils.base_types import UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


def average_score(scores: list[int]) -> int:
    """Mean of the scores, rounded half up. 0 when there is nothing to average."""
    if not scores:
        return 0
    return round_half_up(sum(scores), 100 * len(scores))


class CertificateDataBuilder:
    """Summarizes a user's subtopic and level test scores per enrolled module, for printing on certificates."""

    def __init__(
        self,
        curriculum_table: CurriculumTable,
        enrollments_table: EnrollmentsTable,
        results_table: AssessmentResultsTable,
    ) -> None:
        self.curriculum_table = curriculum_table
        self.enrollments_table = enrollments_table
        self.results_table = results_table

    def build(self, user_id: UserId) -> CertificateDataResponseModel:
        results = {result.testKey: result for result in self.results_table.get_results_for_user(user_id)}

        modules: list[ModuleScoreSummaryModel] = []
        for enrollment in self.enrollments_table.get_enrollments_for_user(user_id):
            outline = self.curriculum_table.get_module_outline(enrollment.moduleId)
            if outline is None:
                _LOGGER.warning(f"Skipping enrollment of {user_id} in missing module {enrollment.moduleId}.")
                continue
            modules.append(self._summarize_module(outline, enrollment, results))

        return CertificateDataResponseModel(userId=user_id, modules=modules)

    def _summarize_module(
        self,
        outline: ModuleOutlineModel,
        enrollment: EnrollmentModel,
        results: dict[str, AssessmentResultModel],
    ) -> ModuleScoreSummaryModel:
        module_scores: list[int] = []
        levels: list[LevelScoreSummaryModel] = []
        for level_outline in outline.levels:
            level_summary, level_scores = self._summarize_level(level_outline, results)
            levels.append(level_summary)
            module_scores.extend(level_scores)

        return ModuleScoreSummaryModel(
            id=outline.module.id,
            title=outline.module.title,
            levels=levels,
            averageScore=average_score(module_scores),
            completedAt=enrollment.completedAt,
        )

    def _summarize_level(
        self, level_outline: LevelOutlineModel, results: dict[str, AssessmentResultModel]
    ) -> tuple[LevelScoreSummaryModel, list[int]]:
        scores: list[int] = []
        sub_topics: list[SubTopicScoreSummaryModel] = []
        for sub_topic in level_outline.subTopics:
            if not sub_topic.subTopicTestId:
                continue
            result = results.get(make_test_key("SUB_TOPIC", sub_topic.subTopicTestId))
            if result is None:
                continue
            sub_topics.append(
                SubTopicScoreSummaryModel(
                    id=sub_topic.id,
                    title=sub_topic.title,
                    score=result.score,
                    passed=result.passed,
                    timeSpent=result.timeSpent,
                    completedAt=result.completedAt,
                )
            )
            scores.append(result.score)

        level = level_outline.level
        level_test = None
        if level.levelTestId:
            result = results.get(make_test_key("LEVEL", level.levelTestId))
            if result is not None:
                level_test = LevelTestSummaryModel(
                    score=result.score,
                    passed=result.passed,
                    timeSpent=result.timeSpent,
                    completedAt=result.completedAt,
                )
                scores.append(result.score)

        summary = LevelScoreSummaryModel(
            id=level.id,
            title=level.title,
            subTopics=sub_topics,
            levelTest=level_test,
            averageScore=average_score(scores),
        )
        return summary, scores
