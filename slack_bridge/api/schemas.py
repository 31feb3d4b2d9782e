"""
Pydantic request models for the REST surface.

Fields are optional at the model level; handlers do the presence checks so
the 400 detail text stays under their control.
"""
from typing import Optional

from pydantic import BaseModel


class SendMessageRequest(BaseModel):
    channel: Optional[str] = None
    text: Optional[str] = None


class OpenDmRequest(BaseModel):
    user_id: Optional[str] = None
