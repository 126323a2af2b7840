"""
UnifX Configuration
===================

`StoreConfig` collects the knobs a store is created with. It is a frozen
dataclass: build one, or let `create_store` build one from keyword overrides.

```python
from unifx import StoreConfig, create_store

config = StoreConfig(selector_cache_size=256, log_maxlen=25)
store = create_store({"auth": auth_reducer}, config=config)

# Same thing, inline
store = create_store({"auth": auth_reducer}, selector_cache_size=256, log_maxlen=25)

# From loaded settings (e.g. a parsed TOML/JSON section)
config = StoreConfig.from_mapping({"default_strategy": "serialize"})
```
"""

import dataclasses
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from .effects import Strategy
from .selector import DEFAULT_SELECTOR_CACHE_SIZE

DEFAULT_LOG_MAXLEN = 1000


@dataclass(frozen=True)
class StoreConfig:
    """
    Store settings.

    Attributes:
        selector_cache_size: Capacity of selector factories created through the store
        record_actions: Whether committed actions are appended to the action log
        log_maxlen: Bound on retained log entries; older entries are folded
            into the log's base state (None keeps everything)
        default_strategy: Strategy for effects registered without one
        clock: Timestamp source for log entries
    """

    selector_cache_size: int = DEFAULT_SELECTOR_CACHE_SIZE
    record_actions: bool = True
    log_maxlen: Optional[int] = DEFAULT_LOG_MAXLEN
    default_strategy: Strategy = Strategy.CONCURRENT
    clock: Callable[[], float] = time.time

    def __post_init__(self):
        if self.selector_cache_size < 1:
            raise ValueError("selector_cache_size must be at least 1")
        if self.log_maxlen is not None and self.log_maxlen < 1:
            raise ValueError("log_maxlen must be at least 1 or None")
        object.__setattr__(self, "default_strategy", Strategy.coerce(self.default_strategy))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "StoreConfig":
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown store settings: {sorted(unknown)!r}")
        return cls(**dict(values))

    def replace(self, **changes: Any) -> "StoreConfig":
        return dataclasses.replace(self, **changes)


__all__ = ["DEFAULT_LOG_MAXLEN", "StoreConfig"]
