"""
Notification Emitter.

The engine talks to a NotificationEmitter through three calls. Calls made
while a unit of work is open are queued on a NotificationOutbox and only
handed to the emitter after the transaction commits. Delivery is best effort
and attempted at most once; failures are logged and never propagate.
"""
import asyncio
import logging
import threading
import traceback
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import interactions
from cachetools import TTLCache

from db.base import Session
from events.bingo.calculators import RequirementProgress, requirement_target
from events.bingo.config import config
from events.bingo.errors import NotificationDeliveryError
from events.bingo.requirements import (
    ChatRequirement,
    ExperienceRequirement,
    ItemDropRequirement,
    PuzzleRequirement,
    RequirementSet,
    SpeedrunRequirement,
    TieredRequirementSet,
    ValueDropRequirement,
)
from utils.format import format_number, format_seconds

logger = logging.getLogger("bingo.notifications")

COMPLETION_COLOR = 0x00FF00
PROGRESS_COLOR = 0x0099FF
EFFECT_COLOR = 0x9B59B6
BLOCKED_COLOR = 0xF00000


class NotificationEmitter:
    """Outbound notification contract. The base implementation discards everything."""

    def notify_tile_progress(self, team_id: int, tile_id: int, position: str, progress_summary: str,
                             is_completed: bool, newly_completed_tiers: Optional[List[int]] = None,
                             points_awarded: Optional[int] = None) -> None:
        pass

    def notify_effect_grant(self, team_id: int, effect: Dict[str, Any], source: str, trigger: str,
                            immediate_result: Optional[Dict[str, Any]] = None) -> None:
        pass

    def notify_effect_activation(self, source_team_id: int, target_team_id: Optional[int],
                                 effect: Dict[str, Any], action: str, result: Dict[str, Any]) -> None:
        pass


class NotificationOutbox:
    """Collects notifications during a unit of work and releases them after commit."""

    def __init__(self, emitter: NotificationEmitter):
        self.emitter = emitter
        self._pending: List[Tuple[str, Dict[str, Any]]] = []

    def tile_progress(self, **kwargs) -> None:
        self._pending.append(("notify_tile_progress", kwargs))

    def effect_grant(self, **kwargs) -> None:
        self._pending.append(("notify_effect_grant", kwargs))

    def effect_activation(self, **kwargs) -> None:
        self._pending.append(("notify_effect_activation", kwargs))

    def absorb(self, other: "NotificationOutbox") -> None:
        """Take over the notifications staged by a committed unit of work."""
        self._pending.extend(other._pending)
        other._pending = []

    def flush(self) -> None:
        pending, self._pending = self._pending, []
        for method, kwargs in pending:
            try:
                getattr(self.emitter, method)(**kwargs)
            except Exception as e:
                error = NotificationDeliveryError(f"{method} failed: {e}")
                logger.error(f"{error}\n{traceback.format_exc()}")


def summarize_progress(requirement_set: RequirementSet, metadata: Dict[str, Any],
                       progress_value: Optional[float]) -> str:
    """Human readable progress of a tile. Puzzle tiles only report whether they are solved."""
    if isinstance(requirement_set, TieredRequirementSet):
        requirement = requirement_set.shared_requirement
        tiers = len(metadata.get("completedTiers", []))
        prefix = f"Tiers {tiers}/{len(requirement_set.tiers)}"
        if isinstance(requirement, PuzzleRequirement):
            return prefix
        # Progress towards the highest tier
        target_requirement = requirement_set.tiers[-1].requirement
        return f"{prefix} - {_describe(target_requirement, progress_value)}"

    if requirement_set.total_requirements > 1:
        done = len(metadata.get("completedRequirementIndices", []))
        label = "all" if requirement_set.match_type.value == "all" else "any"
        return f"{done}/{requirement_set.total_requirements} requirements ({label})"

    requirement = requirement_set.requirements[0]
    if isinstance(requirement, PuzzleRequirement):
        entry = RequirementProgress.from_dict(metadata.get("requirementProgress", {}).get("0"))
        solved = bool(entry and entry.metadata.get("isSolved"))
        return "Puzzle solved" if solved else "Puzzle unsolved"
    return _describe(requirement, progress_value)


def _describe(requirement, value: Optional[float]) -> str:
    target = requirement_target(requirement)
    if isinstance(requirement, SpeedrunRequirement):
        best = format_seconds(value) if value is not None else "no time"
        return f"{best} (goal {format_seconds(target)})"
    current = value or 0
    if isinstance(requirement, ExperienceRequirement):
        return f"{format_number(current)} / {format_number(target)} XP"
    if isinstance(requirement, ValueDropRequirement):
        return f"{format_number(current)} gp / {format_number(target)} gp"
    if isinstance(requirement, ItemDropRequirement):
        return f"{format_number(current)} / {format_number(target)} items"
    if isinstance(requirement, ChatRequirement):
        return f"{format_number(current)} / {format_number(target)} messages"
    return f"{format_number(current)} / {format_number(target)}"


def build_tile_progress_embed(team_name: str, position: str, progress_summary: str, is_completed: bool,
                              newly_completed_tiers: Optional[List[int]] = None,
                              points_awarded: Optional[int] = None) -> interactions.Embed:
    title = f"🎉 Tile Completed: {position}" if is_completed else f"📊 Progress Update: {position}"
    description = f"**Team:** {team_name}\n**Position:** {position}\n\n"
    if is_completed:
        description += "✅ **Tile Completed!**\n"
    description += f"**Progress:** {progress_summary}\n"
    if newly_completed_tiers:
        description += f"**Tiers Completed:** {', '.join(str(t) for t in newly_completed_tiers)}\n"
    if points_awarded:
        description += f"**Points Awarded:** {format_number(points_awarded)}\n"
    embed = interactions.Embed(
        title=title,
        description=description,
        color=COMPLETION_COLOR if is_completed else PROGRESS_COLOR,
        timestamp=datetime.now(),
    )
    embed.set_footer("Bingo Event Progress")
    return embed


def build_effect_grant_embed(team_name: str, effect: Dict[str, Any], source: str, trigger: str,
                             immediate_result: Optional[Dict[str, Any]] = None) -> interactions.Embed:
    embed = interactions.Embed(
        title=f"✨ Effect Earned: {effect.get('name')}",
        description=f"**Team:** {team_name}\n{effect.get('description') or ''}",
        color=EFFECT_COLOR,
        timestamp=datetime.now(),
    )
    embed.add_field(name="Source", value=source.replace("_", " ").title(), inline=True)
    embed.add_field(name="Trigger", value=trigger.title(), inline=True)
    if immediate_result and immediate_result.get("pointsAwarded"):
        embed.add_field(name="Applied", value=f"+{format_number(immediate_result['pointsAwarded'])} points", inline=False)
    embed.set_footer("Bingo Effects")
    return embed


def build_effect_activation_embed(source_team_name: str, target_team_name: Optional[str], effect: Dict[str, Any],
                                  action: str, result: Dict[str, Any]) -> interactions.Embed:
    headline = {
        "blocked": "🛡️ Effect Blocked",
        "reflected": "🔁 Effect Reflected",
    }.get(action, "⚡ Effect Activated")
    description = f"**{effect.get('name')}** used by **{source_team_name}**"
    if target_team_name:
        description += f" on **{target_team_name}**"
    if result.get("message"):
        description += f"\n\n{result['message']}"
    embed = interactions.Embed(
        title=headline,
        description=description,
        color=BLOCKED_COLOR if action == "blocked" else EFFECT_COLOR,
        timestamp=datetime.now(),
    )
    if result.get("pointsChanged"):
        embed.add_field(name="Points", value=f"{result['pointsChanged']:+}", inline=True)
    embed.set_footer("Bingo Effects")
    return embed


class _BackgroundLoop:
    """A daemon thread running an asyncio loop for fire-and-forget deliveries."""

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock = threading.Lock()

    def _ensure(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(target=loop.run_forever, name="bingo-notifications", daemon=True)
                thread.start()
                self._loop = loop
            return self._loop

    def submit(self, coro) -> None:
        asyncio.run_coroutine_threadsafe(coro, self._ensure())


class DiscordWebhookEmitter(NotificationEmitter):
    """
    Sends embeds to each team's Discord webhook.
    Team lookups are cached briefly; teams without a webhook are skipped.
    """

    def __init__(self, session_factory=Session, timeout: Optional[int] = None):
        self.session_factory = session_factory
        self.timeout = timeout or config.notify_timeout
        self._teams = TTLCache(maxsize=1024, ttl=300)
        self._loop = _BackgroundLoop()

    def _team(self, team_id: Optional[int]) -> Tuple[Optional[str], Optional[str]]:
        """Return (name, webhook_url) of a team."""
        if team_id is None:
            return None, None
        if team_id in self._teams:
            return self._teams[team_id]
        # Import here to avoid circular imports
        from events.models import EventTeamModel

        with self.session_factory() as session:
            team = session.get(EventTeamModel, team_id)
            found = (team.name, team.discord_webhook_url) if team else (None, None)
        self._teams[team_id] = found
        return found

    async def _post(self, webhook_url: str, embed: interactions.Embed, description: str) -> None:
        try:
            async with aiohttp.ClientSession() as http:
                async with http.post(
                    webhook_url,
                    json={"embeds": [embed.to_dict()]},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status >= 400:
                        raise NotificationDeliveryError(f"Webhook returned status {response.status}")
            logger.info(f"Sent {description} notification")
        except (asyncio.TimeoutError, aiohttp.ClientError, NotificationDeliveryError) as e:
            logger.error(f"Failed to send {description} notification: {e}")

    def _deliver(self, team_id: int, embed_factory, description: str) -> None:
        team_name, webhook_url = self._team(team_id)
        if not webhook_url:
            logger.debug(f"Team {team_id} has no webhook configured, skipping {description} notification")
            return
        self._loop.submit(self._post(webhook_url, embed_factory(team_name), description))

    def notify_tile_progress(self, team_id, tile_id, position, progress_summary, is_completed,
                             newly_completed_tiers=None, points_awarded=None) -> None:
        self._deliver(
            team_id,
            lambda team_name: build_tile_progress_embed(team_name, position, progress_summary, is_completed,
                                                        newly_completed_tiers, points_awarded),
            "completion" if is_completed else "progress",
        )

    def notify_effect_grant(self, team_id, effect, source, trigger, immediate_result=None) -> None:
        self._deliver(
            team_id,
            lambda team_name: build_effect_grant_embed(team_name, effect, source, trigger, immediate_result),
            "effect grant",
        )

    def notify_effect_activation(self, source_team_id, target_team_id, effect, action, result) -> None:
        target_name, _ = self._team(target_team_id)
        self._deliver(
            source_team_id,
            lambda team_name: build_effect_activation_embed(team_name, target_name, effect, action, result),
            f"effect {action}",
        )
        if target_team_id is not None:
            self._deliver(
                target_team_id,
                lambda team_name: build_effect_activation_embed(self._team(source_team_id)[0], team_name,
                                                                effect, action, result),
                f"effect {action}",
            )
