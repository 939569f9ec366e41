import typing

import pydantic

from owlcode_backend.utils.base_types import CourseId, IsoTimestamp, TopicId, UserId

MAX_NOTE_LENGTH = 20000


class TopicNoteModel(pydantic.BaseModel):
    """
    A trainee's private note on a topic.
    Stored with PK userId and SK topicId, so there is one note per user per topic.
    """

    userId: UserId
    topicId: TopicId
    courseId: CourseId
    note: str = ""
    updatedAt: typing.Optional[IsoTimestamp] = None


class TopicNoteInputModel(pydantic.BaseModel):
    note: str = pydantic.Field(default="", max_length=MAX_NOTE_LENGTH)
