"""
Identity collaborator: resolves a bearer token to a requester.
"""
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from newsdesk.core.entities import OwnerScope
from newsdesk.core.errors import Unauthorized


@dataclass(frozen=True)
class Requester:
    user_id: Optional[str]
    is_operator: bool = False

    @property
    def scope(self) -> OwnerScope:
        if self.is_operator:
            return OwnerScope.global_scope()
        return OwnerScope.for_user(self.user_id)


class Identity(ABC):

    @abstractmethod
    def authenticate(self, token: Optional[str]) -> Requester:
        """Raises Unauthorized if the token is missing or unknown."""


class ServiceTokenIdentity(Identity):
    """
    The service token identifies the operator; optional per-user tokens
    identify regular users.
    """

    def __init__(self, service_token: Optional[str], user_tokens: Optional[Dict[str, str]] = None):
        self.service_token = service_token
        self.user_tokens = dict(user_tokens or {})

    def authenticate(self, token: Optional[str]) -> Requester:
        if not token:
            raise Unauthorized("missing bearer token")

        if self.service_token and secrets.compare_digest(token, self.service_token):
            return Requester(user_id=None, is_operator=True)

        for user_token, user_id in self.user_tokens.items():
            if secrets.compare_digest(token, user_token):
                return Requester(user_id=user_id)

        raise Unauthorized("invalid bearer token")
