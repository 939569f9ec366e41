import typing

UserId = typing.NewType("UserId", str)
CourseId = typing.NewType("CourseId", str)
ModuleId = typing.NewType("ModuleId", str)
TopicId = typing.NewType("TopicId", str)
ProblemId = typing.NewType("ProblemId", str)
BatchId = typing.NewType("BatchId", str)
AccessTokenId = typing.NewType("AccessTokenId", str)
IsoTimestamp = typing.NewType("IsoTimestamp", str)

Role = typing.Literal["admin", "trainer", "trainee"]
ProblemStatus = typing.Literal["Solved", "Unsolved"]
