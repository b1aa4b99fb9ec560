import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

class ReviewUpsert(BaseModel):
    model_config = ConfigDict(extra="forbid")

    review: str = Field(min_length=10)
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    tour_id: uuid.UUID
    user_id: uuid.UUID
