from .base import Base
from .session import get_db, init_db

__all__ = ["Base", "get_db", "init_db"]
