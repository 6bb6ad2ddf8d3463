from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class DeliveryReceipt:
    success: bool
    provider: str
    message_id: Optional[str] = None
    message: Optional[str] = None


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    text: str
    tags: Dict[str, str] = field(default_factory=dict)


class PushSender(ABC):
    @abstractmethod
    def send(self, device_token: str, title: str, body: str,
             data: Optional[Dict[str, str]] = None) -> DeliveryReceipt:...


class EmailSender(ABC):
    name: str = "email"

    @abstractmethod
    def send(self, email: OutgoingEmail) -> DeliveryReceipt:...
