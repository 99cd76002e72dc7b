# turn_limiter.py
#
# The consultation ends after MAX_TURNS user messages. The count is always
# derived from the session log, never kept in a separate counter.

from typing import Sequence

from doctor_chat.models.message import Message, Role

MAX_TURNS = 10


def turn_count(log: Sequence[Message]) -> int:
    """Number of user-authored messages in the log. The greeting is a model message and never counts."""
    return sum(1 for message in log if message.role == Role.USER)


def is_limit_reached(log: Sequence[Message], max_turns: int = MAX_TURNS) -> bool:
    return turn_count(log) >= max_turns
