from anchor_api.models.base import Base
from anchor_api.models.link import Link
from anchor_api.models.user import User

__all__ = ["Base", "Link", "User"]
