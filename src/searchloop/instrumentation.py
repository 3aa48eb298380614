"""Optional OpenTelemetry instrumentation for searchloop.

Call ``searchloop.instrument()`` once at startup to enable tracing.
Requires ``opentelemetry-api`` to be installed; runs behave identically
without it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "searchloop") -> None:
    """Enable OpenTelemetry tracing for every run, provider call and tool call.

    Call once at startup, after configuring your TracerProvider::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())

        import searchloop
        searchloop.instrument()

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install searchloop[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; spans will be "
            "discarded. Set up a TracerProvider to export "
            "traces."
        )
    else:
        logger.info("searchloop instrumentation enabled")


def uninstrument() -> None:
    """Disable tracing. Subsequent runs emit no spans."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def agent_span(agent_name: str, model: str, max_iterations: int, max_tool_calls: int):
    """Wrap one run in an ``invoke_agent`` span."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"invoke_agent {agent_name}",
        attributes={
            "gen_ai.operation.name": "invoke_agent",
            "gen_ai.agent.name": agent_name,
            "gen_ai.request.model": model,
            "searchloop.max_iterations": max_iterations,
            "searchloop.max_tool_calls": max_tool_calls,
        },
    ) as span:
        yield span


@asynccontextmanager
async def completion_span(system: str, model: str, iteration: int, tools_offered: bool):
    """Wrap one streamed provider call in a ``chat`` span."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
            "searchloop.iteration": iteration,
            "searchloop.tools_offered": tools_offered,
        },
    ) as span:
        yield span


@asynccontextmanager
async def tool_span(tool_name: str, call_id: str):
    """Wrap a tool execution in an ``execute_tool`` span."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"execute_tool {tool_name}",
        attributes={
            "gen_ai.operation.name": "execute_tool",
            "gen_ai.tool.name": tool_name,
            "gen_ai.tool.call.id": call_id,
        },
    ) as span:
        yield span


def record_usage(span, usage) -> None:
    """Set token-usage attributes from a :class:`searchloop.usage.Usage`."""
    if span is None or usage is None:
        return
    span.set_attribute("gen_ai.usage.input_tokens", usage.prompt_tokens)
    span.set_attribute("gen_ai.usage.output_tokens", usage.completion_tokens)


def record_outcome(span, tool_calls_used: int, iterations_used: int) -> None:
    """Set the final budget counters on a run span."""
    if span is None:
        return
    span.set_attribute("searchloop.tool_calls_used", tool_calls_used)
    span.set_attribute("searchloop.iterations_used", iterations_used)


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    Sets ``error.type`` per GenAI semantic conventions.
    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
