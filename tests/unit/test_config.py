import pytest
from pydantic import ValidationError

from searchloop.config import RunConfig, SearchConfig


class TestRunConfig:
    def test_defaults(self):
        config = RunConfig()
        assert config.max_iterations == 4
        assert config.max_tool_calls == 2
        assert config.temperature == 0.7
        assert config.max_tokens == 2000

    @pytest.mark.parametrize("field, value", [
        ("max_iterations", 0),
        ("max_tool_calls", -1),
        ("temperature", 3.0),
        ("max_tokens", 0),
    ])
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            RunConfig(**{field: value})

    def test_zero_tool_calls_allowed(self):
        assert RunConfig(max_tool_calls=0).max_tool_calls == 0

    def test_frozen(self):
        with pytest.raises(ValidationError):
            RunConfig().max_iterations = 9


class TestSearchConfig:
    def test_default_is_mid_range(self):
        assert SearchConfig().result_count_default == 6
        assert SearchConfig(min_results=1, max_results=4).result_count_default == 2

    def test_explicit_default(self):
        assert SearchConfig(default_results=3).result_count_default == 3

    def test_clamp(self):
        config = SearchConfig()
        assert config.clamp(0) == 2
        assert config.clamp(5) == 5
        assert config.clamp(11) == 10

    def test_inverted_range_rejected(self):
        with pytest.raises(ValidationError, match="exceeds"):
            SearchConfig(min_results=8, max_results=3)

    def test_default_outside_range_rejected(self):
        with pytest.raises(ValidationError):
            SearchConfig(default_results=20)
