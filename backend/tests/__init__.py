# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from rating_exchange.models.exchange import Exchange  # noqa: F401
from rating_exchange.models.exchange_round import ExchangeRound  # noqa: F401
from rating_exchange.models.played_game import PlayedGame  # noqa: F401
from rating_exchange.models.submission import Submission  # noqa: F401
