from rating_exchange.models.exchange import Exchange, JamType
from rating_exchange.models.exchange_round import ExchangeRound, RoundState
from rating_exchange.models.played_game import PlayedGame
from rating_exchange.models.submission import Submission

__all__ = [
    "Exchange",
    "JamType",
    "ExchangeRound",
    "RoundState",
    "Submission",
    "PlayedGame",
]
