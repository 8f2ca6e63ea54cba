from enum import Enum as PyEnum


class RequirementType(PyEnum):
    """Enumeration of the requirement variants a bingo tile can carry"""
    ITEM_DROP = "ITEM_DROP"
    PET = "PET"
    VALUE_DROP = "VALUE_DROP"
    SPEEDRUN = "SPEEDRUN"
    EXPERIENCE = "EXPERIENCE"
    BA_GAMBLES = "BA_GAMBLES"
    CHAT = "CHAT"
    PUZZLE = "PUZZLE"


class MatchType(PyEnum):
    ALL = "all"
    ANY = "any"


class TierPolicy(PyEnum):
    """How points are awarded when a later tier qualifies after the tile closed"""
    FIRST = "first"
    DELTA = "delta"


class TileCategory(PyEnum):
    SLAYER = "slayer"
    PVM = "pvm"
    RAIDS = "raids"
    COLLECTION = "collection"
    CLUES = "clues"
    SKILLS = "skills"
    QUESTS = "quests"
    DIARIES = "diaries"
    MINIGAMES = "minigames"
    COMBAT = "combat"
    PETS = "pets"
    AGILITY = "agility"


class TileDifficulty(PyEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXTREME = "extreme"


class CompletionType(PyEnum):
    AUTO = "auto"
    MANUAL_ADMIN = "manual_admin"


class EventKind(PyEnum):
    """Kinds of inbound gameplay events"""
    LOOT = "LOOT"
    PET = "PET"
    SPEEDRUN = "SPEEDRUN"
    EXPERIENCE = "EXPERIENCE"
    BA_GAMBLE = "BA_GAMBLE"
    CHAT = "CHAT"


class EffectKind(PyEnum):
    BUFF = "buff"
    DEBUFF = "debuff"


class EffectCategory(PyEnum):
    POINTS = "points"
    DEFENSE = "defense"
    OFFENSE = "offense"
    BOARD_MANIPULATION = "board_manipulation"
    PASSIVE = "passive"


class EffectTrigger(PyEnum):
    IMMEDIATE = "immediate"
    MANUAL = "manual"
    REACTIVE = "reactive"


class EffectTarget(PyEnum):
    SELF = "self"
    ENEMY = "enemy"
    ALL = "all"


class EffectSource(PyEnum):
    TILE_COMPLETION = "tile_completion"
    ROW_COMPLETION = "row_completion"
    COLUMN_COMPLETION = "column_completion"
    ADMIN = "admin"


class LineType(PyEnum):
    TILE = "tile"
    ROW = "row"
    COLUMN = "column"


class GrantStatus(PyEnum):
    """Lifecycle of an effect grant. Every state except IDLE is terminal."""
    IDLE = "idle"
    ACTIVATED = "activated"
    BLOCKED = "blocked"
    REFLECTED = "reflected"
    EXPIRED = "expired"


class EffectAction(PyEnum):
    EARNED = "earned"
    ACTIVATED = "activated"
    AUTO_TRIGGERED = "auto_triggered"
    REFLECTED = "reflected"
    BLOCKED = "blocked"
    EXPIRED = "expired"


class ResolutionResult(PyEnum):
    """Outcome of an adverse action against a team"""
    ACTIVATED = "activated"
    BLOCKED = "blocked"
    REFLECTED = "reflected"


# Effect types understood by the resolution engine
POINT_BONUS = "point_bonus"
LINE_COMPLETION_BONUS = "line_completion_bonus"
POINT_PENALTY = "point_penalty"
TILE_LOCK = "tile_lock"
TILE_UNLOCK = "tile_unlock"
TILE_PROGRESS_RESET = "tile_progress_reset"
TILE_SWAP_SELF = "tile_swap_self"
SHIELD = "shield"
REFLECT = "reflect"
