from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Message:
    to: str
    subject: str
    body: str
    is_html: bool = True


class EmailSender(ABC):
    """Delivery backend. Raising from ``send`` makes the email task retry."""

    @property
    @abstractmethod
    def sender_name(self) -> str:
        ...

    @abstractmethod
    async def send(self, message: Message) -> None:
        ...

    async def close(self) -> None:
        pass
