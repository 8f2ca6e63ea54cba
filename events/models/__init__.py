# Event models package
"""
Event models for the bingo engine.

This package contains all event-related database models:
- EventModel: Base event model
- EventTeamModel: Event teams and their score
- Bingo models (in types/bingo/): tiles, boards, progress and effects
"""

# Import all core models
from .EventModel import EventModel
from .EventTeamModel import EventTeamModel

# Import event type models
from .types.bingo import (
    BingoTile,
    BingoBoardModel,
    BingoBoardTile,
    BingoTileProgress,
    BingoEffect,
    BingoBoardEffect,
    BingoEffectGrant,
    BingoEffectActivation,
    BingoLineCompletion,
    BingoProcessedEvent,
)

# Export all models
__all__ = [
    'EventModel',
    'EventTeamModel',
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
