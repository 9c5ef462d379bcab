"""Configuration types for subscribers and the bundled transports."""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt
from typing_extensions import Annotated, final

from .definitions import BuildFailurePolicy


@final
class SubscriberConfig(BaseModel):
    """The user-provided configuration of a ProtobufDynamicSubscriber."""

    topic: Annotated[str, Field(min_length=1)]
    """
    Name of the topic to subscribe to. The topic's descriptor set and type name are looked up lazily.
    """

    build_failure_policy: BuildFailurePolicy = BuildFailurePolicy.RETRY
    """
    What to do after a parser build fails (i.e. the topic's schema has not propagated yet).

    default: BuildFailurePolicy.RETRY
    """

    default_receive_timeout_ms: int = -1
    """
    Timeout used by receive() when it is called without an explicit timeout.
    Negative values block until a payload arrives, 0 only checks for an already buffered payload.

    default: -1
    """

    # pydantic config
    model_config = ConfigDict(revalidate_instances='always')


@dataclass
class MQTTTransportConfig:
    """Configuration for the MQTT-backed transport."""

    username: Annotated[str, Field(min_length=1)]
    """
    Username credentials for broker connection.
    """

    password: Annotated[str, Field(min_length=1)]
    """
    Password credentials for broker connection.
    """

    host: Annotated[str, Field(min_length=1)] = '127.0.0.1'
    """
    Broker hostname (default: 127.0.0.1)
    """

    port: Optional[PositiveInt] = None  # noqa: FA100 (Pydantic uses runtime annotations)
    """
    Broker port (default: 1883)
    """

    uid: Optional[str] = None  # noqa: FA100 (Pydantic uses runtime annotations)
    """
    Client id to present to the broker. A random UUID is used if this is not set.
    """

    receive_queue_size: PositiveInt = 1024
    """
    Maximum number of payloads buffered per subscription for receive(). When full, the oldest payload is dropped.
    """
