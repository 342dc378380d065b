from .schemas import Message, SubmitMessageRequest
