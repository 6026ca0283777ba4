"""Error taxonomy for governance and royalty operations.

Every failure the engines raise is a ``DAOError`` subclass with a stable
``kind`` string, so a calling layer (service facade, CLI, HTTP adapter)
can map it to a response without parsing messages.

All errors subclass ValueError, so callers that only catch ValueError
still see them.
"""

from __future__ import annotations


class DAOError(ValueError):
    """Base class for all governance/royalty failures."""
    kind = "dao_error"


class NotFoundError(DAOError):
    """A proposal, pool, member, team, contribution or milestone is missing."""
    kind = "not_found"


class InvalidStateError(DAOError):
    """The operation is not legal for the entity's current status."""
    kind = "invalid_state"


class NotEligibleError(DAOError):
    """The actor is not allowed to perform the operation."""
    kind = "not_eligible"


class DuplicateVoteError(DAOError):
    """The voter already cast a ballot on this proposal."""
    kind = "duplicate_vote"


class ExpiredError(DAOError):
    """The proposal's voting deadline has passed."""
    kind = "expired"


class InvalidArgumentError(DAOError):
    """Malformed input: bad vote option, negative amount, bad threshold."""
    kind = "invalid_argument"


class NoContributionsError(DAOError):
    """No eligible contributions exist to form a distribution basis."""
    kind = "no_contributions"

