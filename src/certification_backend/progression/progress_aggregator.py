import logging
import typing
from datetime import datetime

from certification_backend.dynamodb.content_progress_table import ContentProgressTable
from certification_backend.dynamodb.curriculum_table import CurriculumTable
from certification_backend.dynamodb.enrollments_table import EnrollmentsTable
from certification_backend.models.curriculum_models import (
    LevelModel,
    LevelOutlineModel,
    ModuleOutlineModel,
    SubTopicModel,
)
from certification_backend.models.enrollment_models import (
    ContentCompletionStateModel,
    EnrollmentModel,
    EnrollmentProgressResponseModel,
)
from certification_backend.progression.errors import (
    ForbiddenError,
    InvalidRequestError,
    NotEnrolledError,
    NotFoundError,
)
from certification_backend.progression.scoring import compute_progress_percentage
from certification_backend.utils.base_types import ContentId, LevelId, ModuleId, SubTopicId, UserId
from certification_backend.utils.time_utils import to_iso, utc_now

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class SubTopicScope(typing.NamedTuple):
    sub_topic: SubTopicModel
    level: LevelModel
    module_id: ModuleId


def is_level_complete(level: LevelOutlineModel, completed_sub_topic_ids: typing.AbstractSet[SubTopicId]) -> bool:
    """A level is complete when every subtopic under it is complete. A level without subtopics never is."""
    sub_topic_ids = level.sub_topic_ids
    return bool(sub_topic_ids) and all(s in completed_sub_topic_ids for s in sub_topic_ids)


def completed_level_ids(
    outline: ModuleOutlineModel, completed_sub_topic_ids: typing.AbstractSet[SubTopicId]
) -> list[LevelId]:
    return [level.level.id for level in outline.levels if is_level_complete(level, completed_sub_topic_ids)]


class ProgressAggregator:
    """
    Maintains an enrollment's completedSubTopics set and cached progressPercentage.

    Content completion flows upward: Content -> SubTopic (all published content done) -> Level
    (all subtopics done) -> Module (progressPercentage). completedSubTopics only ever grows, and
    progressPercentage is always recomputed from a consistent read of it.
    """

    def __init__(
        self,
        curriculum_table: CurriculumTable,
        content_progress_table: ContentProgressTable,
        enrollments_table: EnrollmentsTable,
        clock: typing.Callable[[], datetime] = utc_now,
    ) -> None:
        self.curriculum_table = curriculum_table
        self.content_progress_table = content_progress_table
        self.enrollments_table = enrollments_table
        self.clock = clock

    def require_enrollment(self, user_id: UserId, module_id: ModuleId) -> EnrollmentModel:
        enrollment = self.enrollments_table.get_paid_enrollment(user_id, module_id)
        if enrollment is None:
            _LOGGER.warning(f"User {user_id} has no paid enrollment for module {module_id}.")
            raise NotEnrolledError(f"Not enrolled in module {module_id} or payment not completed.")
        return enrollment

    def require_module_outline(self, module_id: ModuleId) -> ModuleOutlineModel:
        outline = self.curriculum_table.get_module_outline(module_id)
        if outline is None:
            raise NotFoundError(f"Module {module_id} not found.")
        return outline

    def resolve_sub_topic_scope(self, sub_topic_id: SubTopicId) -> SubTopicScope:
        sub_topic = self.curriculum_table.get_sub_topic(sub_topic_id)
        if sub_topic is None:
            raise NotFoundError(f"Sub-topic {sub_topic_id} not found.")
        level = self.curriculum_table.get_level(sub_topic.levelId)
        if level is None:
            raise NotFoundError(f"Level {sub_topic.levelId} of sub-topic {sub_topic_id} not found.")
        return SubTopicScope(sub_topic=sub_topic, level=level, module_id=level.moduleId)

    def _published_content_complete(self, user_id: UserId, sub_topic: SubTopicModel, when_empty: bool) -> bool:
        published = self.curriculum_table.get_published_content_ids(sub_topic)
        if not published:
            return when_empty
        return published.issubset(self.content_progress_table.get_completed_content_ids(user_id))

    def is_sub_topic_content_complete(self, user_id: UserId, sub_topic: SubTopicModel) -> bool:
        """
        True when every published content unit under the subtopic is complete for the user.
        A subtopic with no published content is never complete through content events.
        """
        return self._published_content_complete(user_id, sub_topic, when_empty=False)

    def is_sub_topic_test_unlocked(self, user_id: UserId, sub_topic: SubTopicModel) -> bool:
        """A subtopic test opens once all published content is complete, or immediately when there is none."""
        return self._published_content_complete(user_id, sub_topic, when_empty=True)

    def mark_content_complete(self, user_id: UserId, content_id: ContentId) -> ContentCompletionStateModel:
        content = self.curriculum_table.get_content(content_id)
        if content is None or not content.isPublished:
            raise NotFoundError(f"Content {content_id} not found.")

        scope = self.resolve_sub_topic_scope(content.subTopicId)
        self.require_enrollment(user_id, scope.module_id)
        outline = self.require_module_outline(scope.module_id)
        if scope.sub_topic.id not in outline.sub_topic_ids:
            raise NotFoundError(f"Sub-topic {scope.sub_topic.id} is not part of module {scope.module_id}.")

        self.content_progress_table.mark_complete(
            user_id=user_id,
            content_id=content_id,
            sub_topic_id=scope.sub_topic.id,
            completed_at=to_iso(self.clock()),
        )

        sub_topic_completed = self.is_sub_topic_content_complete(user_id, scope.sub_topic)
        if sub_topic_completed:
            self.enrollments_table.add_completed_sub_topics(user_id, scope.module_id, {scope.sub_topic.id})

        progress_percentage, completed = self._recompute(user_id, scope.module_id, outline)
        level_outline = outline.find_level(scope.level.id)

        return ContentCompletionStateModel(
            contentId=content_id,
            subTopicId=scope.sub_topic.id,
            levelId=scope.level.id,
            moduleId=scope.module_id,
            subTopicCompleted=scope.sub_topic.id in completed,
            levelCompleted=bool(level_outline and is_level_complete(level_outline, completed)),
            progressPercentage=progress_percentage,
        )

    def mark_sub_topic_complete(self, user_id: UserId, sub_topic_id: SubTopicId) -> EnrollmentProgressResponseModel:
        """
        Direct completion of a subtopic. Held to the same rule as content events: every published content
        unit under it must already be complete.

        :raises ForbiddenError: while published content is outstanding (always, for a subtopic without any).
        """
        return self._complete_sub_topic(user_id, sub_topic_id, self.is_sub_topic_content_complete)

    def record_sub_topic_test_pass(
        self, user_id: UserId, sub_topic_id: SubTopicId
    ) -> EnrollmentProgressResponseModel:
        """Completes a subtopic after its test was passed. Zero-content subtopics are allowed through."""
        return self._complete_sub_topic(user_id, sub_topic_id, self.is_sub_topic_test_unlocked)

    def _complete_sub_topic(
        self,
        user_id: UserId,
        sub_topic_id: SubTopicId,
        is_completable: typing.Callable[[UserId, SubTopicModel], bool],
    ) -> EnrollmentProgressResponseModel:
        scope = self.resolve_sub_topic_scope(sub_topic_id)
        self.require_enrollment(user_id, scope.module_id)
        outline = self.require_module_outline(scope.module_id)
        if sub_topic_id not in outline.sub_topic_ids:
            raise InvalidRequestError(f"Sub-topic {sub_topic_id} is not part of module {scope.module_id}.")

        if not is_completable(user_id, scope.sub_topic):
            _LOGGER.warning(f"User {user_id} tried to complete sub-topic {sub_topic_id} with content outstanding.")
            raise ForbiddenError(f"Complete all content in sub-topic {sub_topic_id} first.")

        if self.enrollments_table.add_completed_sub_topics(user_id, scope.module_id, {sub_topic_id}) is None:
            raise NotEnrolledError(f"Not enrolled in module {scope.module_id}.")

        self._recompute(user_id, scope.module_id, outline)
        return self.get_enrollment_progress(user_id, scope.module_id, outline=outline)

    def recompute_progress(
        self, user_id: UserId, module_id: ModuleId, outline: typing.Optional[ModuleOutlineModel] = None
    ) -> int:
        """Recalculates and stores progressPercentage from completedSubTopics. Safe to call at any time."""
        progress_percentage, _ = self._recompute(user_id, module_id, outline or self.require_module_outline(module_id))
        return progress_percentage

    def _recompute(
        self, user_id: UserId, module_id: ModuleId, outline: ModuleOutlineModel
    ) -> tuple[int, set[SubTopicId]]:
        enrollment = self.enrollments_table.get_enrollment(user_id, module_id, consistent_read=True)
        if enrollment is None:
            raise NotEnrolledError(f"Not enrolled in module {module_id}.")

        progress_percentage = compute_progress_percentage(enrollment.completedSubTopics, outline.sub_topic_ids)
        if progress_percentage != enrollment.progressPercentage:
            self.enrollments_table.set_progress_percentage(user_id, module_id, progress_percentage)
        return progress_percentage, set(enrollment.completedSubTopics)

    def get_enrollment_progress(
        self, user_id: UserId, module_id: ModuleId, outline: typing.Optional[ModuleOutlineModel] = None
    ) -> EnrollmentProgressResponseModel:
        enrollment = self.require_enrollment(user_id, module_id)
        outline = outline or self.require_module_outline(module_id)
        module_sub_topic_ids = outline.sub_topic_ids
        completed = [s for s in module_sub_topic_ids if s in enrollment.completedSubTopics]

        return EnrollmentProgressResponseModel(
            moduleId=module_id,
            progressPercentage=enrollment.progressPercentage,
            completedSubTopics=completed,
            completedLevels=completed_level_ids(outline, enrollment.completedSubTopics),
            totalSubTopics=len(module_sub_topic_ids),
            levelTestScores=enrollment.levelTestScores,
            examDate=enrollment.examDate,
            examCompleted=enrollment.examCompleted,
            examScore=enrollment.examScore,
            completedAt=enrollment.completedAt,
        )
