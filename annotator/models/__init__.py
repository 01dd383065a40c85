from .annotations import Annotation, AnnotationReply, AnnotationType
from .documents import Document, DocumentStatus, DocumentTag
from .login_tokens import LoginToken
from .user_sessions import UserSession
from .users import User, UserRole

__all__ = [
    "Annotation",
    "AnnotationReply",
    "AnnotationType",
    "Document",
    "DocumentStatus",
    "DocumentTag",
    "LoginToken",
    "User",
    "UserRole",
    "UserSession",
]
