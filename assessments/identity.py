"""
Candidate identity for an exam attempt.

A session belongs either to an enrolled user or to a guest holding an
invitation, never both.
"""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Enrolled:
    user_id: int

    @property
    def key(self):
        return f"user:{self.user_id}"


@dataclass(frozen=True)
class Guest:
    invitation_id: int
    email: str = ""
    name: str = ""

    @property
    def key(self):
        return f"guest:{self.invitation_id}"


CandidateIdentity = Union[Enrolled, Guest]


def identity_of(principal):
    """Map an authenticated request principal to a candidate identity."""
    if getattr(principal, 'invitation', None) is not None:
        return principal.identity
    return Enrolled(principal.pk)
