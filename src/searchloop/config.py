from pydantic import BaseModel, ConfigDict, Field, model_validator


class RunConfig(BaseModel):
    """Limits and sampling options for one agent run.

    Args:
        max_iterations: Caps total provider round-trips.
        max_tool_calls: Caps total executed tool invocations.
        temperature: Sampling temperature sent to the provider.
        max_tokens: Output length cap per provider call.
    """

    model_config = ConfigDict(frozen=True)

    max_iterations: int = Field(default=4, ge=1)
    max_tool_calls: int = Field(default=2, ge=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, ge=1)


class SearchConfig(BaseModel):
    """Settings for the ``webSearch`` tool and its Serper backend."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = "https://google.serper.dev/search"
    min_results: int = Field(default=2, ge=1)
    max_results: int = Field(default=10, ge=1)
    default_results: int | None = None
    timeout: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def _check_range(self):
        if self.min_results > self.max_results:
            raise ValueError(
                f"min_results ({self.min_results}) exceeds "
                f"max_results ({self.max_results})"
            )
        if self.default_results is not None and not (
            self.min_results <= self.default_results <= self.max_results
        ):
            raise ValueError("default_results must lie within the result range")
        return self

    @property
    def result_count_default(self) -> int:
        if self.default_results is not None:
            return self.default_results
        return (self.min_results + self.max_results) // 2

    def clamp(self, count: int) -> int:
        return max(self.min_results, min(self.max_results, count))
