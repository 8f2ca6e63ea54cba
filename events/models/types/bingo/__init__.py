# Bingo models package
"""
Bingo-related models for the event system.

This package contains all bingo database models:
- BingoTile: Library tile with its requirement set
- BingoBoardModel: A team's bingo board for an event
- BingoBoardTile: Individual tiles on a bingo board
- BingoTileProgress: Team-scoped progress of a board tile
- BingoEffect: Library buff/debuff
- BingoBoardEffect: Effects earned by completing a tile, row or column
- BingoEffectGrant: Effects granted to a team
- BingoEffectActivation: Audit log of effect actions
- BingoLineCompletion: Completed rows and columns
- BingoProcessedEvent: Game events already applied to a tile
"""

from .BingoTile import BingoTile
from .BingoBoard import BingoBoardModel
from .BingoBoardTile import BingoBoardTile
from .BingoTileProgress import BingoTileProgress
from .BingoEffect import BingoEffect
from .BingoBoardEffect import BingoBoardEffect
from .BingoEffectGrant import BingoEffectGrant
from .BingoEffectActivation import BingoEffectActivation
from .BingoLineCompletion import BingoLineCompletion
from .BingoProcessedEvent import BingoProcessedEvent

# Export all models
__all__ = [
    'BingoTile',
    'BingoBoardModel',
    'BingoBoardTile',
    'BingoTileProgress',
    'BingoEffect',
    'BingoBoardEffect',
    'BingoEffectGrant',
    'BingoEffectActivation',
    'BingoLineCompletion',
    'BingoProcessedEvent',
]
