"""Question schemas. Authors of anonymous questions are always masked."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from .common import APIModel

ANONYMOUS_USERNAME = "Anonymous"


class QuestionCreateRequest(APIModel):
    organization_id: uuid.UUID
    content: str
    is_anonymous: bool = False


class QuestionAuthor(APIModel):
    id: Optional[uuid.UUID] = None
    username: str


ANONYMOUS_AUTHOR = QuestionAuthor(id=None, username=ANONYMOUS_USERNAME)


class QuestionResponse(APIModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    content: str
    is_anonymous: bool
    author: QuestionAuthor
    created_at: datetime
    last_message_time: datetime
