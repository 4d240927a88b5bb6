import typing

import pydantic
from pydantic import BaseModel, Field

from certification_backend.utils.base_types import (
    ContentId,
    LevelId,
    ModuleId,
    OptionId,
    QuestionId,
    SubTopicId,
    TestId,
    TestKind,
)

DEFAULT_PASSING_SCORE = 70


class ModuleModel(BaseModel):
    id: ModuleId
    title: str
    levelIds: list[LevelId] = Field(default_factory=list)
    moduleTestId: typing.Optional[TestId] = None
    isActive: bool = True


class LevelModel(BaseModel):
    id: LevelId
    moduleId: ModuleId
    title: str = ""
    orderIndex: int = 0
    subTopicIds: list[SubTopicId] = Field(default_factory=list)
    levelTestId: typing.Optional[TestId] = None


class SubTopicModel(BaseModel):
    id: SubTopicId
    levelId: LevelId
    title: str = ""
    orderIndex: int = 0
    contentIds: list[ContentId] = Field(default_factory=list)
    subTopicTestId: typing.Optional[TestId] = None


class ContentModel(BaseModel):
    id: ContentId
    subTopicId: SubTopicId
    orderIndex: int = 0
    isPublished: bool = False


class AnswerOptionModel(BaseModel):
    optionId: OptionId
    isCorrect: bool = False


class QuestionModel(BaseModel):
    id: QuestionId
    options: list[AnswerOptionModel] = Field(default_factory=list)

    def is_correct_option(self, option_id: OptionId) -> bool:
        return any(option.optionId == option_id and option.isCorrect for option in self.options)


class AssessmentModel(BaseModel):
    """A subtopic, level or module test. The three kinds share one shape and differ only by parent scope."""

    id: TestId
    testKind: TestKind
    parentId: str = Field(description="SubTopic, Level or Module id depending on testKind")
    questionIds: list[QuestionId] = Field(default_factory=list)
    totalQuestions: int = Field(default=0, ge=0)
    passingScore: int = Field(default=DEFAULT_PASSING_SCORE, ge=0, le=100)
    timeLimit: typing.Optional[int] = Field(default=None, ge=0, description="Seconds")
    isActive: bool = True

    @pydantic.model_validator(mode="after")
    def _default_total_questions(self) -> "AssessmentModel":
        if not self.totalQuestions:
            self.totalQuestions = len(self.questionIds)
        return self


class LevelOutlineModel(BaseModel):
    level: LevelModel
    subTopics: list[SubTopicModel] = Field(default_factory=list)

    @property
    def sub_topic_ids(self) -> list[SubTopicId]:
        return [sub_topic.id for sub_topic in self.subTopics]


class ModuleOutlineModel(BaseModel):
    """A module with its levels and subtopics resolved, in order."""

    module: ModuleModel
    levels: list[LevelOutlineModel] = Field(default_factory=list)

    @property
    def sub_topic_ids(self) -> list[SubTopicId]:
        return [sub_topic_id for level in self.levels for sub_topic_id in level.sub_topic_ids]

    def find_level(self, level_id: LevelId) -> typing.Optional[LevelOutlineModel]:
        for level in self.levels:
            if level.level.id == level_id:
                return level
        return None
