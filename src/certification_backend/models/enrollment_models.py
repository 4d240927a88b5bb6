import typing

from pydantic import BaseModel, Field

from certification_backend.utils.base_types import (
    ContentId,
    IsoTimestamp,
    LevelId,
    ModuleId,
    SubTopicId,
    UserId,
)

PaymentStatus = typing.Literal["PENDING", "COMPLETED", "FAILED"]
PAYMENT_COMPLETED: PaymentStatus = "COMPLETED"


class LevelScoreModel(BaseModel):
    """Latest level test outcome, kept on the enrollment for level mastery reporting."""

    score: int = Field(..., ge=0, le=100)
    passed: bool
    totalQuestions: int = Field(..., ge=0)
    correctAnswers: int = Field(..., ge=0)
    completedAt: IsoTimestamp


class EnrollmentModel(BaseModel):
    userId: UserId = Field(description="Partition Key")
    moduleId: ModuleId = Field(description="Sort Key")
    paymentStatus: PaymentStatus = "PENDING"
    enrolledAt: typing.Optional[IsoTimestamp] = None
    # Stored as a DynamoDB string set; absent when empty since DynamoDB has no empty sets.
    completedSubTopics: set[SubTopicId] = Field(default_factory=set)
    progressPercentage: int = Field(default=0, ge=0, le=100)
    levelTestScores: dict[LevelId, LevelScoreModel] = Field(default_factory=dict)
    examDate: typing.Optional[IsoTimestamp] = None
    examCompleted: bool = False
    examScore: typing.Optional[int] = Field(default=None, ge=0, le=100)
    completedAt: typing.Optional[IsoTimestamp] = None
    certificateAvailableAt: typing.Optional[IsoTimestamp] = None
    certificateIssued: bool = False
    certificateUrl: typing.Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.paymentStatus == PAYMENT_COMPLETED


class EnrollmentProgressResponseModel(BaseModel):
    moduleId: ModuleId
    progressPercentage: int
    completedSubTopics: list[SubTopicId]
    completedLevels: list[LevelId]
    totalSubTopics: int
    levelTestScores: dict[LevelId, LevelScoreModel] = Field(default_factory=dict)
    examDate: typing.Optional[IsoTimestamp] = None
    examCompleted: bool = False
    examScore: typing.Optional[int] = None
    completedAt: typing.Optional[IsoTimestamp] = None


class ContentCompletionStateModel(BaseModel):
    """What changed after a single content unit was marked complete."""

    contentId: ContentId
    subTopicId: SubTopicId
    levelId: LevelId
    moduleId: ModuleId
    subTopicCompleted: bool
    levelCompleted: bool
    progressPercentage: int


class EnrollmentSummaryModel(BaseModel):
    moduleId: ModuleId
    moduleTitle: typing.Optional[str] = None
    paymentStatus: PaymentStatus
    progressPercentage: int
    enrolledAt: typing.Optional[IsoTimestamp] = None
    examDate: typing.Optional[IsoTimestamp] = None
    examCompleted: bool = False
    completedAt: typing.Optional[IsoTimestamp] = None


class ListOfEnrollmentsResponseModel(BaseModel):
    enrollments: list[EnrollmentSummaryModel]
