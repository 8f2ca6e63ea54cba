# Event type models package
"""
Event type specific models. Bingo is currently the only event type.
"""

from .bingo import BingoBoardModel, BingoBoardTile, BingoTile

__all__ = [
    'BingoBoardModel',
    'BingoBoardTile',
    'BingoTile',
]
