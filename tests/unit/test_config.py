"""Unit tests for store configuration."""

import dataclasses

import pytest

from unifx import DEFAULT_LOG_MAXLEN, Strategy, StoreConfig, create_store


@pytest.mark.unit
def test_defaults():
    """Default settings record a bounded log with concurrent effects"""
    config = StoreConfig()

    assert config.selector_cache_size == 128
    assert config.record_actions is True
    assert config.log_maxlen == DEFAULT_LOG_MAXLEN
    assert config.default_strategy is Strategy.CONCURRENT


@pytest.mark.unit
def test_strategy_names_are_coerced():
    """default_strategy accepts strategy names"""
    assert StoreConfig(default_strategy="serialize").default_strategy is Strategy.SERIALIZE


@pytest.mark.unit
@pytest.mark.edge_case
@pytest.mark.parametrize(
    "settings",
    [
        {"selector_cache_size": 0},
        {"log_maxlen": 0},
        {"default_strategy": "sometimes"},
    ],
)
def test_invalid_settings_are_rejected(settings):
    """Out-of-range settings raise ValueError"""
    with pytest.raises(ValueError):
        StoreConfig(**settings)


@pytest.mark.unit
def test_config_is_frozen():
    """Config instances cannot be modified"""
    config = StoreConfig()

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.log_maxlen = 10


@pytest.mark.unit
def test_from_mapping_rejects_unknown_keys():
    """Loaded settings must name known fields"""
    config = StoreConfig.from_mapping({"log_maxlen": 25, "default_strategy": "supersede"})

    assert config.log_maxlen == 25
    assert config.default_strategy is Strategy.SUPERSEDE
    with pytest.raises(ValueError, match="max_age"):
        StoreConfig.from_mapping({"max_age": 25})


@pytest.mark.unit
def test_replace_returns_updated_copy():
    """replace() leaves the original untouched"""
    config = StoreConfig()

    updated = config.replace(record_actions=False)

    assert updated.record_actions is False
    assert config.record_actions is True


@pytest.mark.unit
def test_create_store_applies_overrides(reducers):
    """Keyword overrides are layered over the given config"""
    base = StoreConfig(log_maxlen=25)

    store = create_store(reducers, config=base, selector_cache_size=8)

    assert store.config.log_maxlen == 25
    assert store.config.selector_cache_size == 8
    assert store.log.maxlen == 25


@pytest.mark.unit
def test_selector_factory_uses_configured_size(reducers):
    """Store-created selector factories are bounded by selector_cache_size"""
    store = create_store(reducers, selector_cache_size=4)

    factory = store.create_selector_factory(lambda n: lambda state: n)

    assert factory.maxsize == 4


@pytest.mark.unit
def test_record_actions_can_be_disabled(reducers, actions):
    """Without recording there is no log to verify"""
    store = create_store(reducers, record_actions=False)
    store.dispatch(actions.increment())

    assert store.log is None
    with pytest.raises(RuntimeError):
        store.verify_replay()


@pytest.mark.unit
def test_default_log_is_bounded(reducers, actions):
    """A default store retains at most DEFAULT_LOG_MAXLEN entries and still replays"""
    store = create_store(reducers)
    for _ in range(DEFAULT_LOG_MAXLEN + 50):
        store.dispatch(actions.increment())

    assert store.log.maxlen == DEFAULT_LOG_MAXLEN
    assert len(store.log) == DEFAULT_LOG_MAXLEN
    assert store.log.base_state["counter"] == 50
    assert store.verify_replay()


@pytest.mark.unit
def test_unbounded_log_is_opt_in(reducers, actions):
    """log_maxlen=None keeps every entry"""
    store = create_store(reducers, log_maxlen=None)
    for _ in range(DEFAULT_LOG_MAXLEN + 1):
        store.dispatch(actions.increment())

    assert store.log.maxlen is None
    assert len(store.log) == DEFAULT_LOG_MAXLEN + 1
