import pytest
from dynproto_sdk import BuildFailurePolicy, SubscriberConfig
from pydantic import ValidationError

# TESTS #####################


def test_defaults():
    config = SubscriberConfig(topic='t1')
    assert config.build_failure_policy is BuildFailurePolicy.RETRY
    assert config.default_receive_timeout_ms == -1


def test_missing_topic():
    with pytest.raises(ValidationError) as ex:
        SubscriberConfig()
    errors = [{'type': e['type'], 'loc': e['loc']} for e in ex.value.errors()]
    assert errors == [{'type': 'missing', 'loc': ('topic',)}]


def test_empty_topic():
    with pytest.raises(ValidationError) as ex:
        SubscriberConfig(topic='')
    assert ex.value.errors()[0]['type'] == 'string_too_short'


def test_policy_from_string():
    config = SubscriberConfig.model_validate({'topic': 't1', 'build_failure_policy': 'give_up'})
    assert config.build_failure_policy is BuildFailurePolicy.GIVE_UP


def test_invalid_policy():
    with pytest.raises(ValidationError) as ex:
        SubscriberConfig(topic='t1', build_failure_policy='sometimes')
    assert ex.value.errors()[0]['loc'] == ('build_failure_policy',)
