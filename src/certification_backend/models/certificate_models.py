import typing

from pydantic import BaseModel, Field

from certification_backend.utils.base_types import IsoTimestamp, LevelId, ModuleId, SubTopicId, UserId

CertificateState = typing.Literal["NOT_ELIGIBLE", "PENDING_AVAILABILITY", "AVAILABLE", "ISSUED"]


class CertificateStatusModel(BaseModel):
    userId: UserId
    moduleId: typing.Optional[ModuleId] = None
    state: CertificateState
    certificateAvailableAt: typing.Optional[IsoTimestamp] = None
    isCertificateAvailable: bool = False
    certificateIssued: bool = False
    certificateUrl: typing.Optional[str] = None


class IssuedCertificateModel(BaseModel):
    certificateUrl: str
    alreadyIssued: bool = False


class SubTopicScoreSummaryModel(BaseModel):
    id: SubTopicId
    title: str
    score: int
    passed: bool
    timeSpent: typing.Optional[int] = None
    completedAt: IsoTimestamp


class LevelTestSummaryModel(BaseModel):
    score: int
    passed: bool
    timeSpent: typing.Optional[int] = None
    completedAt: IsoTimestamp


class LevelScoreSummaryModel(BaseModel):
    id: LevelId
    title: str
    subTopics: list[SubTopicScoreSummaryModel] = Field(default_factory=list)
    levelTest: typing.Optional[LevelTestSummaryModel] = None
    averageScore: int = 0


class ModuleScoreSummaryModel(BaseModel):
    id: ModuleId
    title: str
    levels: list[LevelScoreSummaryModel] = Field(default_factory=list)
    averageScore: int = 0
    completedAt: typing.Optional[IsoTimestamp] = None


class CertificateDataResponseModel(BaseModel):
    userId: UserId
    modules: list[ModuleScoreSummaryModel] = Field(default_factory=list)
