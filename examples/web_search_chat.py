"""Answer one question with a web-search-capable agent.

Demonstrates:

- Choosing a provider (Cerebras through the openai SDK, or GMI over raw SSE)

- Streaming answer deltas with ``Runner.iter()``

- Capping searches with ``RunConfig`` and printing the collected sources

- OpenTelemetry tracing with ConsoleSpanExporter (``--trace``)

Usage:
    pip install -e ".[examples]"  # only needed for --trace
    Add CEREBRAS_API_KEY=..., GMI_API_KEY=... and SERPER_API_KEY=... to .env, then:
    uv run --env-file=.env examples/web_search_chat.py "What did NASA announce this week?"
    uv run --env-file=.env examples/web_search_chat.py --provider gmi "..."
"""

import argparse
import asyncio
import logging

from searchloop import (
    Agent,
    CerebrasProvider,
    GMIProvider,
    RunConfig,
    Runner,
    SerperClient,
    WebSearchTool,
    configure_logging,
)
from searchloop.events import RawResponseEvent, RunCompleteEvent, RunItemEvent
from searchloop.instrumentation import instrument, uninstrument
from searchloop.usage import LoggingUsageSink

MODELS = {
    "cerebras": (CerebrasProvider, "gpt-oss-120b"),
    "gmi": (GMIProvider, "openai/gpt-oss-120b"),
}


def _setup_tracing():
    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tracer_provider)
    instrument()


async def main(args):
    provider_cls, model = MODELS[args.provider]
    search = SerperClient()
    agent = Agent(
        model=args.model or model,
        provider=provider_cls(),
        tools=[WebSearchTool(client=search)],
    )
    runner = Runner(
        RunConfig(max_iterations=args.max_iterations, max_tool_calls=args.max_tool_calls),
        usage_sink=LoggingUsageSink(),
    )

    try:
        async for event in runner.iter(agent, args.question):
            if isinstance(event, RawResponseEvent):
                print(event.content, end="", flush=True)
            elif isinstance(event, RunItemEvent) and event.name == "tool_call":
                print(f"\n[searched: {event.data['tool_name']} ({event.data['call_id']})]")
            elif isinstance(event, RunCompleteEvent):
                result = event.result
                print()
                if not result.ok:
                    print(f"Run failed: {result.error}")
                elif result.search_metadata:
                    print("\nSources:")
                    for source in result.search_metadata.sources:
                        print(f"  - {source.title}: {source.url}")
    finally:
        await search.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("question")
    parser.add_argument("--provider", choices=sorted(MODELS), default="cerebras")
    parser.add_argument("--model", default=None)
    parser.add_argument("--max-iterations", type=int, default=4)
    parser.add_argument("--max-tool-calls", type=int, default=2)
    parser.add_argument("--trace", action="store_true")
    args = parser.parse_args()

    configure_logging(level=logging.INFO)
    if args.trace:
        _setup_tracing()
    try:
        asyncio.run(main(args))
    finally:
        if args.trace:
            uninstrument()
