"""Registration and lookup of users"""

import logging
import uuid

import bcrypt

from filedepot.errors import ValidationError
from filedepot.models import User
from filedepot.stores.documents import DocumentStore

logger = logging.getLogger("filedepot.users")

COLLECTION = "users"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, digest: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), digest.encode("utf-8"))
    except ValueError:
        # not a valid bcrypt digest
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def user_id(email: str) -> str:
    """Users get an id derived from their email, so inserting it twice fails in the store itself"""
    return uuid.uuid5(uuid.NAMESPACE_URL, f"mailto:{normalize_email(email)}").hex[:24]


class UserRegistry:
    def __init__(self, documents: DocumentStore):
        self.documents = documents

    async def create(self, email: str | None, password: str | None) -> User:
        """
        Register a new user.
        Raises ValidationError if email or password is missing and AlreadyExists if the email is taken
        """
        email = normalize_email(email or "")
        if not email:
            raise ValidationError("email")
        if not password:
            raise ValidationError("password")
        doc = dict(email=email, password=hash_password(password))
        id = await self.documents.insert(COLLECTION, doc, id=user_id(email))
        logger.info(f"Registered user {email} ({id})")
        return User.from_document(id, doc)

    async def get(self, id: str) -> User | None:
        hit = await self.documents.find_one(COLLECTION, {"id": id})
        return User.from_document(*hit) if hit else None

    async def find_by_email(self, email: str) -> User | None:
        hit = await self.documents.find_one(COLLECTION, {"email": normalize_email(email)})
        return User.from_document(*hit) if hit else None

    async def count(self) -> int:
        return await self.documents.count(COLLECTION)
