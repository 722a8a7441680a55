"""Scraping strategies, tried in order by the engine.

KnownErpStrategy talks to one recognized ERP family through its fixed
endpoints. GenericErpStrategy discovers the login form and attendance page
of an arbitrary ERP and reads the page with a content-extraction model.
"""

from src.unitrack.strategies.generic import GenericErpStrategy
from src.unitrack.strategies.known_erp import KnownErpStrategy
from src.unitrack.strategies.outcome import OutcomeKind, StrategyOutcome

__all__ = [
    "GenericErpStrategy",
    "KnownErpStrategy",
    "OutcomeKind",
    "StrategyOutcome",
]
