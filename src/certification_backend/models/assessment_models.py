import typing

from pydantic import BaseModel, Field, model_validator

from certification_backend.utils.base_types import (
    IsoTimestamp,
    LevelId,
    ModuleId,
    OptionId,
    QuestionId,
    SubTopicId,
    TestId,
    TestKind,
    UserId,
)

TEST_KINDS: tuple[TestKind, ...] = ("SUB_TOPIC", "LEVEL", "MODULE")


def make_test_key(test_kind: TestKind, test_id: TestId) -> str:
    """Sort key of a stored result; one item per (user, test kind, test id)."""
    return f"{test_kind}#{test_id}"


class SubmitTestRequestModel(BaseModel):
    testKind: TestKind
    testId: TestId = Field(..., min_length=1)
    moduleId: typing.Optional[ModuleId] = None
    levelId: typing.Optional[LevelId] = None
    subTopicId: typing.Optional[SubTopicId] = None
    answers: dict[QuestionId, OptionId] = Field(default_factory=dict)
    timeSpent: typing.Optional[int] = Field(default=None, ge=0, description="Seconds")

    @model_validator(mode="after")
    def _require_scope_ids(self) -> "SubmitTestRequestModel":
        required: list[str] = ["moduleId"]
        if self.testKind in ("LEVEL", "SUB_TOPIC"):
            required.append("levelId")
        if self.testKind == "SUB_TOPIC":
            required.append("subTopicId")
        missing = [name for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(f"Missing required scope ids for {self.testKind} test: {', '.join(missing)}")
        return self


class AssessmentResultModel(BaseModel):
    """The single stored result of a user for one test. Resubmissions overwrite it."""

    userId: UserId = Field(description="Partition Key")
    testKey: str = Field(description="Sort Key - testKind#testId")
    testKind: TestKind
    testId: TestId
    moduleId: ModuleId
    levelId: typing.Optional[LevelId] = None
    subTopicId: typing.Optional[SubTopicId] = None
    score: int = Field(..., ge=0, le=100)
    totalQuestions: int = Field(..., ge=0)
    correctAnswers: int = Field(..., ge=0)
    answers: dict[QuestionId, OptionId] = Field(default_factory=dict)
    passed: bool
    timeSpent: typing.Optional[int] = None
    completedAt: IsoTimestamp
    firstAttemptedAt: typing.Optional[IsoTimestamp] = None
    attempts: int = Field(default=1, ge=1)


class SubmissionOutcomeModel(BaseModel):
    testKind: TestKind
    testId: TestId
    score: int
    passed: bool
    correctAnswers: int
    totalQuestions: int
    passingScore: int
    attempts: int
    completedAt: IsoTimestamp


class ListOfAssessmentResultsResponseModel(BaseModel):
    results: list[AssessmentResultModel]
