from models.base_model import Base
from models.user import User, Role
from models.refresh_token import RefreshToken
from models.db_storage import DBStorage

__all__ = ["Base", "User", "Role", "RefreshToken", "DBStorage"]
