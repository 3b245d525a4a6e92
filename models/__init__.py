from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .user_session import UserSession
from .failed_login_attempt import FailedLoginAttempt
from .account_unlock import AccountUnlock
from .blocked_ip import BlockedIp
