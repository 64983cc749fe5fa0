"""Bounded conversation transcript that never separates tool calls from their results."""

from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set

from ..exceptions import HistoryInvariantError
from ..logger import get_logger
from ..messages import (
    AssistantToolCallsMessage,
    BaseMessage,
    ChatMessageList,
    SystemMessage,
    ToolResultMessage,
)

logger = get_logger(__name__)


class HistoryManager:
    """
    Owns the ordered message list of one chat session.

    Appends are checked so that an ``AssistantToolCallsMessage`` is always
    followed by exactly one ``ToolResultMessage`` per request before any other
    message. When the stored transcript exceeds ``max_stored_messages`` the
    oldest plain message is evicted, and a tool-call message is only ever
    evicted together with all of its results. System messages are pinned.

    The manager is not thread-safe: one session is mutated by one controller.
    """

    def __init__(self, max_stored_messages: int = 200, messages: Optional[Iterable[BaseMessage]] = None) -> None:
        if max_stored_messages < 1:
            raise ValueError("max_stored_messages must be at least 1")
        self.max_stored_messages = max_stored_messages
        self._messages: List[BaseMessage] = []
        self._pending: Dict[str, str] = {}
        for message in messages or ():
            self.append(message)

    @property
    def messages(self) -> List[BaseMessage]:
        """A copy of the stored transcript."""
        return list(self._messages)

    @property
    def pending_tool_call_ids(self) -> Set[str]:
        """Ids of the last tool-call message that still wait for their result."""
        return set(self._pending)

    @property
    def has_pending_tool_calls(self) -> bool:
        return bool(self._pending)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[BaseMessage]:
        return iter(list(self._messages))

    def append(self, message: BaseMessage) -> None:
        """Append a message, enforcing the tool-call / tool-result pairing.

        Raises:
            HistoryInvariantError: If the message would leave a tool call without
                its result or a result without its call.
        """
        if isinstance(message, ToolResultMessage):
            if message.tool_call_id not in self._pending:
                raise HistoryInvariantError(
                    f"Tool result '{message.tool_call_id}' ({message.name}) does not answer a pending tool call."
                )
            del self._pending[message.tool_call_id]
        elif self._pending:
            raise HistoryInvariantError(
                f"Cannot append a '{message.kind}' message while tool call(s) "
                f"{sorted(self._pending)} still wait for their results."
            )
        elif isinstance(message, AssistantToolCallsMessage):
            ids = message.call_ids
            if not ids:
                raise HistoryInvariantError("A tool-calls message must request at least one tool call.")
            if len(set(ids)) != len(ids):
                raise HistoryInvariantError(f"Duplicate tool call ids in one message: {ids}")
            self._pending = {call.id: call.tool_name for call in message.tool_calls}

        self._messages.append(message)
        self._enforce_capacity()

    def extend(self, messages: Iterable[BaseMessage]) -> None:
        for message in messages:
            self.append(message)

    def get_bounded(self, max_messages: int) -> List[BaseMessage]:
        """Return the recent transcript window sent to the model.

        The scan runs backward from the newest message and stops once
        ``max_messages`` plain (user / assistant text) messages have been
        collected. Tool messages met on the way are always kept, and keeping one
        pulls in every other message of its tool-call unit. System messages are
        always included.

        Args:
            max_messages: Number of plain messages to keep.

        Returns:
            The selected messages in transcript order.
        """
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")

        selected: Set[int] = set()
        plain_count = 0
        for index in range(len(self._messages) - 1, -1, -1):
            message = self._messages[index]
            if message.is_plain:
                if plain_count >= max_messages:
                    break
                plain_count += 1
                selected.add(index)
            elif message.is_tool_message:
                selected.add(index)

        units = self._unit_index()
        for index in list(selected):
            selected.update(units.get(index, ()))

        selected.update(i for i, m in enumerate(self._messages) if isinstance(m, SystemMessage))
        return [self._messages[i] for i in sorted(selected)]

    def validate_pairing(self, messages: Optional[Sequence[BaseMessage]] = None) -> List[str]:
        """Report pairing problems in ``messages`` (the stored transcript by default).

        Tool calls still pending at the end of the stored transcript are reported too.

        Returns:
            Human-readable issues; an empty list means the transcript is consistent.
        """
        target = self._messages if messages is None else list(messages)
        issues: List[str] = []
        expected: Dict[str, str] = {}
        answered: Set[str] = set()

        def close_unit() -> None:
            for call_id, tool_name in expected.items():
                if call_id not in answered:
                    issues.append(f"Tool call '{call_id}' ({tool_name}) has no result.")
            expected.clear()
            answered.clear()

        for message in target:
            if isinstance(message, ToolResultMessage):
                if message.tool_call_id not in expected:
                    issues.append(f"Tool result '{message.tool_call_id}' ({message.name}) has no tool call.")
                elif message.tool_call_id in answered:
                    issues.append(f"Tool call '{message.tool_call_id}' has more than one result.")
                answered.add(message.tool_call_id)
                continue

            close_unit()
            if isinstance(message, AssistantToolCallsMessage):
                expected.update((call.id, call.tool_name) for call in message.tool_calls)

        close_unit()
        return issues

    def stats(self) -> Dict[str, int]:
        """Count messages by kind, plus tool calls, tool results and pending calls."""
        counts: Dict[str, int] = {
            "total": len(self._messages),
            "system": 0,
            "user": 0,
            "assistant_text": 0,
            "assistant_tool_calls": 0,
            "tool_result": 0,
        }
        tool_calls = 0
        for message in self._messages:
            counts[message.kind] = counts.get(message.kind, 0) + 1
            if isinstance(message, AssistantToolCallsMessage):
                tool_calls += len(message.tool_calls)
        counts["tool_calls"] = tool_calls
        counts["tool_results"] = counts["tool_result"]
        counts["pending"] = len(self._pending)
        return counts

    def dump(self) -> List[Dict[str, Any]]:
        """Serialize the transcript to JSON-compatible data."""
        return ChatMessageList.dump_python(self._messages, mode="json")

    @classmethod
    def load(
        cls, data: Sequence[Dict[str, Any]], max_stored_messages: int = 200, repair: bool = False
    ) -> "HistoryManager":
        """Rebuild a manager from :meth:`dump` output.

        Args:
            data: Serialized transcript.
            max_stored_messages: Capacity of the rebuilt manager.
            repair: Drop the messages that break the pairing rules (see :meth:`repair`)
                instead of rejecting the transcript.

        Raises:
            pydantic.ValidationError: If an entry is not a known message.
            HistoryInvariantError: If the data breaks the pairing rules and ``repair`` is False.
        """
        messages: List[BaseMessage] = list(ChatMessageList.validate_python(list(data)))
        if repair:
            messages = cls.repair(messages)
        return cls(max_stored_messages=max_stored_messages, messages=messages)

    @staticmethod
    def repair(messages: Sequence[BaseMessage]) -> List[BaseMessage]:
        """Return a copy of ``messages`` that satisfies the pairing rules.

        Results that answer no call of the preceding tool-call message are dropped,
        as are repeated results. A tool-call message is kept only together with a
        result for every one of its calls; otherwise the whole unit is dropped.
        A plain message identical to the message right before it is dropped too.
        """
        repaired: List[BaseMessage] = []
        unit: List[BaseMessage] = []
        expected: Dict[str, str] = {}
        answered: Set[str] = set()

        def close_unit() -> None:
            if unit:
                if answered == set(expected):
                    repaired.extend(unit)
                else:
                    missing = sorted(set(expected) - answered)
                    logger.warning(f"Dropping tool-call unit with unanswered call(s) {missing}.")
            unit.clear()
            expected.clear()
            answered.clear()

        for message in messages:
            if isinstance(message, ToolResultMessage):
                if message.tool_call_id in expected and message.tool_call_id not in answered:
                    answered.add(message.tool_call_id)
                    unit.append(message)
                else:
                    logger.warning(f"Dropping orphan tool result '{message.tool_call_id}' ({message.name}).")
                continue

            close_unit()
            if isinstance(message, AssistantToolCallsMessage):
                ids = message.call_ids
                if ids and len(set(ids)) == len(ids):
                    unit.append(message)
                    expected.update((c.id, c.tool_name) for c in message.tool_calls)
                else:
                    logger.warning(f"Dropping malformed tool-calls message with ids {ids}.")
                continue

            previous = repaired[-1] if repaired else None
            if (
                message.is_plain
                and previous is not None
                and previous.kind == message.kind
                and previous.content == message.content
            ):
                logger.debug(f"Dropping duplicate '{message.kind}' message.")
                continue
            repaired.append(message)

        close_unit()
        return repaired

    def clean(self) -> int:
        """Repair the stored transcript in place.

        Returns:
            The number of removed messages.

        Raises:
            HistoryInvariantError: If tool calls still wait for their results.
        """
        if self._pending:
            raise HistoryInvariantError(
                f"Cannot clean the history while tool call(s) {sorted(self._pending)} wait for their results."
            )
        repaired = self.repair(self._messages)
        removed = len(self._messages) - len(repaired)
        self._messages = repaired
        if removed:
            logger.info(f"Cleaned history: removed {removed} message(s).")
        return removed

    def truncate_after(self, index: int) -> List[BaseMessage]:
        """Remove every message after ``index``, e.g. to regenerate an edited turn.

        A tool-call unit is never split: if the cut falls inside a unit, the
        whole unit is removed.

        Returns:
            The removed messages, in transcript order.

        Raises:
            IndexError: If ``index`` does not point at a stored message.
        """
        if not 0 <= index < len(self._messages):
            raise IndexError(f"Message index {index} out of range.")

        cut = index + 1
        if cut < len(self._messages):
            unit = self._unit_index().get(cut)
            if unit is not None and min(unit) < cut:
                cut = min(unit)

        removed = self._messages[cut:]
        self._messages = self._messages[:cut]
        self._pending = self._trailing_pending()
        return removed

    def _unit_index(self) -> Dict[int, List[int]]:
        """Map the index of every tool message to all indices of its tool-call unit."""
        units: Dict[int, List[int]] = {}
        owner: Dict[str, int] = {}
        members: Dict[int, List[int]] = {}

        for index, message in enumerate(self._messages):
            if isinstance(message, AssistantToolCallsMessage):
                members[index] = [index]
                for call_id in message.call_ids:
                    owner[call_id] = index
            elif isinstance(message, ToolResultMessage):
                start = owner.get(message.tool_call_id)
                if start is not None:
                    members[start].append(index)

        for unit in members.values():
            for index in unit:
                units[index] = unit
        return units

    def _enforce_capacity(self) -> None:
        while len(self._messages) > self.max_stored_messages:
            evicted = self._evict_oldest()
            if not evicted:
                logger.debug("History over capacity but nothing can be evicted.")
                return
            logger.debug(f"Evicted {len(evicted)} message(s) from history: {[m.kind for m in evicted]}")

    def _evict_oldest(self) -> List[BaseMessage]:
        units = self._unit_index()
        for index, message in enumerate(self._messages):
            if isinstance(message, SystemMessage):
                continue
            if message.is_plain:
                return [self._messages.pop(index)]
            if isinstance(message, AssistantToolCallsMessage):
                if any(call_id in self._pending for call_id in message.call_ids):
                    # The unit being answered right now stays whole.
                    return []
                unit = set(units.get(index, [index]))
                evicted = [m for i, m in enumerate(self._messages) if i in unit]
                self._messages = [m for i, m in enumerate(self._messages) if i not in unit]
                return evicted
        return []

    def _trailing_pending(self) -> Dict[str, str]:
        pending: Dict[str, str] = {}
        for message in self._messages:
            if isinstance(message, AssistantToolCallsMessage):
                pending = {call.id: call.tool_name for call in message.tool_calls}
            elif isinstance(message, ToolResultMessage):
                pending.pop(message.tool_call_id, None)
            else:
                pending = {}
        return pending
