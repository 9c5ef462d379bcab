from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol

from ..exceptions import TopicNotFoundError
from .logger import logger


class TopicMetadataSource(Protocol):
    """Abstract definition of where subscribers look up the schema of a topic.

    Publishers register a topic's descriptor set and type name; subscribers only know the topic name.
    Implementations must be safe to call from any thread.
    """

    def get_topic_descriptor(self, topic: str) -> bytes:
        """Get the serialized FileDescriptorSet of the topic's message type.

        Raises:
            TopicNotFoundError: if the topic is unknown
        """
        ...

    def get_topic_type_name(self, topic: str) -> str:
        """Get the type name of the topic, in '<encoding>:<full.type.Name>' form.

        Raises:
            TopicNotFoundError: if the topic is unknown
        """
        ...


@dataclass(frozen=True)
class TopicRegistration:
    """What a publisher announces about a topic."""

    type_name: str
    descriptor: bytes
    revision: int
    """
    Registry-wide revision at which this registration was stored, increases with every change to the registry
    """


class TopicRegistry(TopicMetadataSource):
    """Thread-safe, in-process store of topic registrations.

    Registrations may arrive after a subscriber was created; a subscriber whose first parser build failed
    will pick up the registration on its next attempt.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._topics: dict[str, TopicRegistration] = {}
        self._revision = 0

    @property
    def revision(self) -> int:
        """Current revision of the registry, 0 if nothing was ever registered."""
        return self._revision

    def register_topic(self, topic: str, type_name: str, descriptor: bytes) -> TopicRegistration:
        """Add or replace the registration of a topic.

        Params:
          topic: topic name
          type_name: type name in '<encoding>:<full.type.Name>' form
          descriptor: serialized FileDescriptorSet containing the type
        Returns:
          the stored registration
        Raises:
          TypeError: if type_name is not a str or descriptor is not bytes-like
        """
        if not isinstance(type_name, str):
            msg = f'type_name must be a str, got {type(type_name).__name__}'
            raise TypeError(msg)
        if not isinstance(descriptor, (bytes, bytearray, memoryview)):
            msg = f'descriptor must be bytes, got {type(descriptor).__name__}'
            raise TypeError(msg)
        with self._lock:
            self._revision += 1
            registration = TopicRegistration(
                type_name=type_name, descriptor=bytes(descriptor), revision=self._revision
            )
            updated = topic in self._topics
            self._topics[topic] = registration
        logger.debug(
            '%s topic %s as %s (revision %d)',
            'Updated' if updated else 'Registered',
            topic,
            type_name,
            registration.revision,
        )
        return registration

    def unregister_topic(self, topic: str) -> bool:
        """Remove a topic registration.

        Returns: True if the topic was registered, False otherwise
        """
        with self._lock:
            if self._topics.pop(topic, None) is None:
                return False
            self._revision += 1
        return True

    def has_topic(self, topic: str) -> bool:
        with self._lock:
            return topic in self._topics

    def topics(self) -> list[str]:
        """Get all registered topic names, sorted."""
        with self._lock:
            return sorted(self._topics)

    def get_registration(self, topic: str) -> TopicRegistration:
        with self._lock:
            registration = self._topics.get(topic)
        if registration is None:
            msg = f'Topic {topic!r} is not registered'
            raise TopicNotFoundError(msg)
        return registration

    def get_topic_descriptor(self, topic: str) -> bytes:
        return self.get_registration(topic).descriptor

    def get_topic_type_name(self, topic: str) -> str:
        return self.get_registration(topic).type_name
