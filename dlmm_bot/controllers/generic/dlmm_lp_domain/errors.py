class DLMMError(Exception):
    """Base error for the LP rebalancer."""


class CollaboratorError(DLMMError):
    """A pool, swap or price collaborator call failed."""


class PositionExistsError(CollaboratorError):
    """Opening was refused because the wallet already holds a position in the pool."""


class PositionNotFoundError(CollaboratorError):
    pass


class PriceUnavailableError(DLMMError):
    """No USD price could be resolved for a mint."""

    def __init__(self, mint: str) -> None:
        super().__init__(f"USD price unavailable for {mint}")
        self.mint = mint
