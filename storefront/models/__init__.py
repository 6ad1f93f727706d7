from .user import User
from .store import Store
from .theme import Theme
from .custom_theme import CustomTheme
from .installation import ThemeInstallation, WorkingCopyState
from .recent_installation import RecentInstallation
