from .context import Board
from .notifications import parse_mentions

__all__ = ["Board", "parse_mentions"]
