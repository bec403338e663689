from .base import Base
from .user import UserModel
from .class_model import ClassModel
from .class_student import ClassStudentModel
from .access_request import AccessRequestModel
from .notification import NotificationModel

__all__ = [
    "Base",
    "UserModel",
    "ClassModel",
    "ClassStudentModel",
    "AccessRequestModel",
    "NotificationModel",
]
