from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr


class Message(BaseModel):
    '''A chat message. Frozen; the Broadcaster assigns id exactly once.'''

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    author: str
    body: str

    def with_id(self, message_id: int) -> "Message":
        return self.model_copy(update={"id": message_id})


class SubmitMessageRequest(BaseModel):
    # any client supplied id is dropped; ids are assigned server side
    model_config = ConfigDict(extra="ignore")

    author: StrictStr = Field(validation_alias=AliasChoices("author", "username"))
    body: StrictStr = Field(validation_alias=AliasChoices("body", "content"))

    def to_message(self) -> Message:
        return Message(author=self.author, body=self.body)
