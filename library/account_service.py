"""
Account registration, authentication and administration.
Passwords are stored only as werkzeug salted hashes.
"""

import contextlib
from typing import ContextManager, List, Optional

import structlog
from werkzeug.security import check_password_hash, generate_password_hash

from .validation import ensure_valid, validate_password, validate_profile_update, validate_registration
from storage.models import User, UserRole, generate_id
from storage.repositories import AccountRepository, RentalLedger
from utilities.errors import ConflictingState, DuplicateAccount, NotFound, Rule

logger = structlog.get_logger(__name__)

DEFAULT_HASH_METHOD = "scrypt"


class AccountService:
    """User accounts and roles."""

    def __init__(
        self,
        accounts: AccountRepository,
        rentals: RentalLedger,
        coordination_lock: Optional[ContextManager] = None,
        hash_method: str = DEFAULT_HASH_METHOD,
    ):
        """
        Initialize the account service.

        Args:
            accounts: Users repository
            rentals: Rentals repository, consulted before deleting an account
            coordination_lock: Lock shared with the rental coordinator
            hash_method: werkzeug password hash method
        """
        self.accounts = accounts
        self.rentals = rentals
        self._coordination = coordination_lock or contextlib.nullcontext()
        self.hash_method = hash_method
        self.logger = logger.bind(component="account_service")

    def _hash(self, password: str) -> str:
        return generate_password_hash(password, method=self.hash_method)

    def register(self, username: str, email: str, password: str) -> User:
        """
        Create a USER account.

        Raises:
            ValidationFailed: Every username, email and password rule that failed
            DuplicateAccount: Username (USERNAME_TAKEN) or email (EMAIL_TAKEN) in use
        """
        ensure_valid(validate_registration(username, email, password))
        username = username.strip()
        email = email.strip()

        with self._coordination:
            if self.accounts.exists_by_username(username):
                raise DuplicateAccount("Username already exists", Rule.USERNAME_TAKEN)
            if self.accounts.exists_by_email(email):
                raise DuplicateAccount("Email already exists", Rule.EMAIL_TAKEN)

            user = User(
                id=generate_id(),
                username=username,
                email=email,
                password_hash=self._hash(password),
                role=UserRole.USER,
                is_protected=False,
                must_change_password=False,
            )
            self.accounts.save(user)

        self.logger.info("User registered", user_id=user.id, username=user.username)
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the account if the credentials match, else None."""
        if not username or not password:
            return None

        user = self.accounts.find_by_username(username)
        if user is None:
            self.logger.info("Login failed: unknown username", username=username)
            return None

        if not check_password_hash(user.password_hash, password):
            self.logger.info("Login failed: wrong password", user_id=user.id)
            return None

        self.logger.debug("Login succeeded", user_id=user.id)
        return user

    def update_profile(self, user_id: str, username: str, email: str, password: Optional[str] = None) -> User:
        """
        Change username and email, and the password if one is given.

        Uniqueness is checked against other accounts only, so resubmitting
        one's own username or email is allowed.
        """
        ensure_valid(validate_profile_update(username, email) + validate_password(password, required=False))
        username = username.strip()
        email = email.strip()

        with self._coordination:
            user = self.get_user(user_id)

            other = self.accounts.find_by_username(username)
            if other is not None and other.id != user.id:
                raise DuplicateAccount("Username already taken", Rule.USERNAME_TAKEN)
            other = self.accounts.find_by_email(email)
            if other is not None and other.id != user.id:
                raise DuplicateAccount("Email already taken", Rule.EMAIL_TAKEN)

            user.username = username
            user.email = email
            if password:
                user.password_hash = self._hash(password)
                user.must_change_password = False
            self.accounts.save(user)

        self.logger.info("Profile updated", user_id=user.id, password_changed=bool(password))
        return user

    def change_password(self, user_id: str, new_password: str) -> User:
        ensure_valid(validate_password(new_password))

        with self._coordination:
            user = self.get_user(user_id)
            user.password_hash = self._hash(new_password)
            user.must_change_password = False
            self.accounts.save(user)

        self.logger.info("Password changed", user_id=user.id)
        return user

    def promote(self, user_id: str) -> User:
        """Grant the ADMIN role."""
        with self._coordination:
            user = self.get_user(user_id)
            user.role = UserRole.ADMIN
            self.accounts.save(user)

        self.logger.info("User promoted", user_id=user.id)
        return user

    def demote(self, user_id: str) -> User:
        """Revoke the ADMIN role. Protected accounts cannot be demoted."""
        with self._coordination:
            user = self.get_user(user_id)
            if user.is_protected:
                raise ConflictingState("Cannot demote protected admin account", Rule.PROTECTED_ACCOUNT)
            user.role = UserRole.USER
            self.accounts.save(user)

        self.logger.info("User demoted", user_id=user.id)
        return user

    def delete(self, user_id: str) -> None:
        """
        Delete an account.

        Raises:
            NotFound: No such account
            ConflictingState: The account is protected (PROTECTED_ACCOUNT) or
                still has active rentals (ACTIVE_RENTALS)
        """
        with self._coordination:
            user = self.get_user(user_id)
            if user.is_protected:
                raise ConflictingState("Cannot delete protected admin account", Rule.PROTECTED_ACCOUNT)
            if self.rentals.find_active_by_user_id(user_id):
                raise ConflictingState(
                    "Cannot delete user with active rentals. User must return all books first.",
                    Rule.ACTIVE_RENTALS
                )
            self.accounts.delete(user_id)

        self.logger.info("User deleted", user_id=user_id)

    def find_user(self, user_id: str) -> Optional[User]:
        return self.accounts.find_by_id(user_id)

    def get_user(self, user_id: str) -> User:
        user = self.accounts.find_by_id(user_id)
        if user is None:
            raise NotFound(f"User not found: {user_id}", Rule.USER_NOT_FOUND)
        return user

    def get_all_users(self) -> List[User]:
        return self.accounts.find_all()
