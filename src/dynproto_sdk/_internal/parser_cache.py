from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from ..definitions import BuildFailurePolicy, ParserCacheState
from ..exceptions import DynprotoError, TopicMetadataError
from .descriptor_registry import build_parser, split_type_name
from .logger import logger

if TYPE_CHECKING:
    from .descriptor_registry import MessageParser
    from .topic_metadata import TopicMetadataSource


class LazyParserCache:
    """Builds the parser of a topic exactly once, the first time it is needed.

    State machine: UNBUILT -> BUILDING -> READY | FAILED. Only one thread may move the cache into BUILDING;
    threads which find a build in progress wait for its outcome instead of starting their own.
    With BuildFailurePolicy.RETRY, a FAILED cache starts a new build on the next get_parser() call.
    With BuildFailurePolicy.GIVE_UP, the first error is re-raised forever.
    """

    def __init__(
        self,
        topic: str,
        metadata_source: TopicMetadataSource,
        failure_policy: BuildFailurePolicy = BuildFailurePolicy.RETRY,
    ) -> None:
        self._topic = topic
        self._metadata_source = metadata_source
        self._failure_policy = failure_policy

        self._condition = threading.Condition()
        self._state = ParserCacheState.UNBUILT
        self._parser: MessageParser | None = None
        self._last_error: DynprotoError | None = None
        self._build_attempts = 0

    @property
    def state(self) -> ParserCacheState:
        return self._state

    @property
    def parser(self) -> MessageParser | None:
        """The built parser, None until a build has succeeded."""
        return self._parser

    @property
    def build_attempts(self) -> int:
        """Number of builds started so far (successful or not)."""
        return self._build_attempts

    @property
    def last_error(self) -> DynprotoError | None:
        """Error of the most recent failed build, None if no build has failed yet."""
        return self._last_error

    def get_parser(self) -> MessageParser:
        """Get the topic's parser, building it first if necessary.

        Raises:
          SchemaError: the topic's descriptor set could not be fetched or linked
          TypeNotFoundError: the topic's type is not part of its descriptor set
        """
        with self._condition:
            while True:
                if self._state is ParserCacheState.READY:
                    return self._parser  # type: ignore[return-value]
                if self._state is ParserCacheState.BUILDING:
                    attempt = self._build_attempts
                    self._condition.wait_for(lambda: self._state is not ParserCacheState.BUILDING)
                    if self._state is ParserCacheState.FAILED and attempt == self._build_attempts:
                        raise self._last_error  # type: ignore[misc]
                    continue
                if (
                    self._state is ParserCacheState.FAILED
                    and self._failure_policy is BuildFailurePolicy.GIVE_UP
                ):
                    raise self._last_error  # type: ignore[misc]
                self._state = ParserCacheState.BUILDING
                self._build_attempts += 1
                attempt = self._build_attempts
                break

        logger.debug('Building parser for topic %s (attempt %d)', self._topic, attempt)
        try:
            parser = self._build()
        except DynprotoError as e:
            with self._condition:
                self._last_error = e
                self._state = ParserCacheState.FAILED
                self._condition.notify_all()
            raise
        except BaseException:
            # never leave waiters blocked on an abandoned build
            with self._condition:
                self._state = ParserCacheState.UNBUILT
                self._condition.notify_all()
            raise

        with self._condition:
            self._parser = parser
            self._state = ParserCacheState.READY
            self._condition.notify_all()
        logger.info('Topic %s will be decoded as %s', self._topic, parser.full_name)
        return parser

    def _build(self) -> MessageParser:
        try:
            raw_type_name = self._metadata_source.get_topic_type_name(self._topic)
            descriptor_set = self._metadata_source.get_topic_descriptor(self._topic)
        except Exception as e:
            msg = f'Unable to get schema information for topic {self._topic!r}: {e}'
            raise TopicMetadataError(msg) from e
        if not isinstance(raw_type_name, str):
            msg = f'Type name of topic {self._topic!r} must be a str, got {type(raw_type_name).__name__}'
            raise TopicMetadataError(msg)
        if not isinstance(descriptor_set, (bytes, bytearray, memoryview)):
            msg = f'Descriptor set of topic {self._topic!r} must be bytes, got {type(descriptor_set).__name__}'
            raise TopicMetadataError(msg)
        return build_parser(bytes(descriptor_set), split_type_name(raw_type_name))
