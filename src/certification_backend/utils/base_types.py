import typing

UserId = typing.NewType("UserId", str)
RoleName = typing.NewType("RoleName", str)

ModuleId = typing.NewType("ModuleId", str)
LevelId = typing.NewType("LevelId", str)
SubTopicId = typing.NewType("SubTopicId", str)
ContentId = typing.NewType("ContentId", str)
TestId = typing.NewType("TestId", str)
QuestionId = typing.NewType("QuestionId", str)
OptionId = typing.NewType("OptionId", str)
IsoTimestamp = typing.NewType("IsoTimestamp", str)

TestKind = typing.Literal["SUB_TOPIC", "LEVEL", "MODULE"]
