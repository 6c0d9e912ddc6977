from datetime import datetime

from pydantic import BaseModel

from schoolsched.models.notification import NotificationType


class NotificationOut(BaseModel):
    id: str
    title: str
    message: str
    notification_type: NotificationType
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}
