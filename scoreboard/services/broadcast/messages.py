"""Display message variants.

Every message is a self-contained dict tagged by ``type``. Consumers look the
type up in ``DISPLAY_MODES`` and ignore fields they do not know, so new
fields can be added without breaking older displays.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

from scoreboard.errors import ValidationError

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    DISPLAY_USER = 'DISPLAY_USER'
    DISPLAY_STATS = 'DISPLAY_STATS'
    DISPLAY_TEAM_LEADERBOARD = 'DISPLAY_TEAM_LEADERBOARD'
    DISPLAY_TEAM_BONUS = 'DISPLAY_TEAM_BONUS'
    DISPLAY_CUSTOM_BONUS = 'DISPLAY_CUSTOM_BONUS'
    CELEBRATE_WINNING_TEAM = 'CELEBRATE_WINNING_TEAM'
    CLEAR_DISPLAY = 'CLEAR_DISPLAY'
    SHOW_SEASON_STANDINGS = 'SHOW_SEASON_STANDINGS'
    # Passive resync, does not change what the screen shows
    SYNC_REVEAL_STATE = 'SYNC_REVEAL_STATE'


# Envelope pushed to a display when it (re)connects or drifts
SNAPSHOT = 'SNAPSHOT'
DEFAULT_MODE = 'waiting'

DISPLAY_MODES = {
    MessageType.DISPLAY_USER: 'user',
    MessageType.DISPLAY_STATS: 'stats',
    MessageType.DISPLAY_TEAM_LEADERBOARD: 'team',
    MessageType.DISPLAY_TEAM_BONUS: 'team_bonus',
    MessageType.DISPLAY_CUSTOM_BONUS: 'custom_bonus',
    MessageType.CELEBRATE_WINNING_TEAM: 'celebration',
    MessageType.CLEAR_DISPLAY: DEFAULT_MODE,
    MessageType.SHOW_SEASON_STANDINGS: 'season_standings',
    MessageType.SYNC_REVEAL_STATE: None,
}

REQUIRED_FIELDS = {
    MessageType.DISPLAY_USER: ('user', 'team', 'next_user'),
    MessageType.DISPLAY_STATS: ('user', 'team', 'score', 'settings', 'next_user'),
    MessageType.DISPLAY_TEAM_LEADERBOARD: ('teams', 'users', 'scores', 'settings', 'standings'),
    MessageType.DISPLAY_TEAM_BONUS: ('team_id', 'team_name', 'team_color', 'bonus_total', 'bonus_categories'),
    MessageType.DISPLAY_CUSTOM_BONUS: ('bonus', 'target_type', 'target'),
    MessageType.CELEBRATE_WINNING_TEAM: ('winning_team', 'settings'),
    MessageType.CLEAR_DISPLAY: (),
    MessageType.SHOW_SEASON_STANDINGS: ('season_id',),
    MessageType.SYNC_REVEAL_STATE: (),
}

# Navigation messages switch mode but are not kept for late joiners
NAVIGATION_TYPES = frozenset({MessageType.SHOW_SEASON_STANDINGS})


def build_message(message_type: MessageType, reveal: Optional[Dict[str, Any]] = None, **fields) -> Dict[str, Any]:
    """Build a wire message, attaching the reveal sets when ``reveal`` is given."""
    message_type = MessageType(message_type)
    missing = [name for name in REQUIRED_FIELDS[message_type] if name not in fields]
    if missing:
        raise ValidationError(f"{message_type.value} is missing {', '.join(missing)}")
    message = {'type': message_type.value}
    message.update(fields)
    if reveal is not None:
        message['session_id'] = reveal.get('session_id')
        message['version'] = reveal.get('version')
        message['shown_user_ids'] = list(reveal.get('shown_user_ids', ()))
        message['revealed_bonus_team_ids'] = list(reveal.get('revealed_bonus_team_ids', ()))
    return message


def parse_message(data: Any) -> Optional[Dict[str, Any]]:
    """Return the message with its type resolved, or None for anything unrecognised."""
    if not isinstance(data, dict):
        logger.warning("[message-reject] not a mapping: %r", type(data).__name__)
        return None
    try:
        message_type = MessageType(data.get('type'))
    except ValueError:
        logger.warning("[message-reject] unknown type=%r", data.get('type'))
        return None
    missing = [name for name in REQUIRED_FIELDS[message_type] if name not in data]
    if missing:
        logger.warning("[message-reject] type=%s missing=%s", message_type.value, missing)
        return None
    return dict(data, type=message_type.value)


def display_mode_for(message: Dict[str, Any]) -> Optional[str]:
    return DISPLAY_MODES[MessageType(message['type'])]
