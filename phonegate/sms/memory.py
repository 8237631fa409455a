from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional


class InMemorySmsProvider:
    """Keeps sent messages per phone number; used in dev and tests."""

    provider_name = "InMemorySmsProvider"

    def __init__(self):
        self._sent: Dict[str, Deque[str]] = defaultdict(deque)

    async def send_sms(self, phone_number: str, message: str) -> bool:
        if phone_number is None or message is None:
            return False
        self._sent[phone_number].append(message)
        return True

    def last_message(self, phone_number: str) -> Optional[str]:
        messages = self._sent.get(phone_number)
        if not messages:
            return None
        return messages[-1]

    def all_messages(self, phone_number: str) -> List[str]:
        return list(self._sent.get(phone_number, ()))

    def message_count(self, phone_number: str) -> int:
        return len(self._sent.get(phone_number, ()))

    def clear(self) -> None:
        self._sent.clear()
