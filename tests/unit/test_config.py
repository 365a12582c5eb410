"""Test settings loading from TOML, environment and overrides, and bus selection."""

from decimal import Decimal

from order_workflow.bus.bus import create_event_bus
from order_workflow.bus.memory_bus import MemoryEventBus
from order_workflow.bus.redis_streams import RedisStreamsBus
from order_workflow.core.config import (
    DEFAULT_CARD_PATTERN,
    MAX_ORDER_TOTAL,
    BusConfig,
    Settings,
    load_settings,
)
from order_workflow.core.enums import BusBackend


class TestSettings:
    def test_defaults(self):
        settings = load_settings()

        assert settings.max_order_total == MAX_ORDER_TOTAL == Decimal("99999.99")
        assert settings.card_pattern == DEFAULT_CARD_PATTERN
        assert settings.strict_versioning is False
        assert settings.bus.backend == BusBackend.MEMORY
        assert settings.observability.log_format == "json"

    def test_toml_file(self, tmp_path):
        path = tmp_path / "orders.toml"
        path.write_text(
            'max_order_total = "500.00"\n'
            "strict_versioning = true\n"
            "\n"
            "[bus]\n"
            'backend = "redis"\n'
            'redis_url = "redis://cache:6379/2"\n'
        )

        settings = load_settings(config_path=path)

        assert settings.max_order_total == Decimal("500.00")
        assert settings.strict_versioning is True
        assert settings.bus.backend == BusBackend.REDIS
        assert settings.bus.redis_url == "redis://cache:6379/2"

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(config_path=tmp_path / "absent.toml")

        assert settings.strict_versioning is False

    def test_overrides_win_over_file(self, tmp_path):
        path = tmp_path / "orders.toml"
        path.write_text("card_min_digits = 12\n")

        settings = load_settings(config_path=path, overrides={"card_min_digits": 15})

        assert settings.card_min_digits == 15

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("ORDERS_STRICT_VERSIONING", "true")
        monkeypatch.setenv("ORDERS_OBSERVABILITY__LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.strict_versioning is True
        assert settings.observability.log_level == "DEBUG"


class TestCreateEventBus:
    def test_memory_by_default(self):
        assert isinstance(create_event_bus(), MemoryEventBus)

    def test_redis_backend(self):
        bus = create_event_bus(BusConfig(backend=BusBackend.REDIS))

        assert isinstance(bus, RedisStreamsBus)
