from .enums import AIConversationStatus, DataType, ForecastType, UserRole
from .organization import Organization
from .user import User
from .category import Category
from .forecast import Forecast
from .group import Group, GroupMember
from .prediction import Prediction
from .ai_conversation import AIConversation


__all__ = [
    "AIConversationStatus",
    "DataType",
    "ForecastType",
    "UserRole",
    "Organization",
    "User",
    "Category",
    "Forecast",
    "Group",
    "GroupMember",
    "Prediction",
    "AIConversation",
]
