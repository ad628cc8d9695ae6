from pydantic import BaseModel
from datetime import datetime


class AlertResponse(BaseModel):
    id: int
    destination_id: int
    alert_type: str
    message: str
    sent_at: datetime
    delivered: bool

    class Config:
        from_attributes = True
