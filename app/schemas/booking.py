import uuid

from pydantic import BaseModel, ConfigDict, Field

class BookingUpsert(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tour_id: uuid.UUID
    user_id: uuid.UUID
    price: float = Field(ge=0)
    paid: bool = True
