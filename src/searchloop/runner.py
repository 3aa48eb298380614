import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field

from searchloop.agent import Agent
from searchloop.config import RunConfig
from searchloop.errors import (
    BudgetExhaustedError,
    Cancelled,
    EmptyResponseError,
    RecoverableToolError,
    SearchLoopError,
)
from searchloop.events import (
    RawResponseEvent,
    ReasoningEvent,
    RunCompleteEvent,
    RunItemEvent,
    StreamEvent,
)
from searchloop.instrumentation import (
    agent_span,
    completion_span,
    record_error,
    record_outcome,
    record_usage,
    tool_span,
)
from searchloop.message import (
    Message,
    MessageRole,
    ToolCall,
    ToolCallResultMessage,
    system,
    user,
)
from searchloop.result import (
    CompletedRun,
    FailedRun,
    RunResult,
    SearchMetadata,
    SearchSource,
)
from searchloop.streaming import TurnAccumulator
from searchloop.tools import error_payload
from searchloop.transcript import Transcript
from searchloop.usage import Usage, UsageRecord, UsageSink
from searchloop.web_search import SearchResponse

logger = logging.getLogger(__name__)

FORCE_ANSWER_NOTICE = (
    "You have completed {max_tool_calls} searches and gathered sufficient "
    "information. You MUST now provide a comprehensive final answer to the "
    "user's question using ONLY the search results you have already "
    "received. DO NOT request any more searches. DO NOT say you need to "
    "search. Provide a complete answer NOW based on the information you have."
)

TOOL_LIMIT_NOTICE = (
    "You have reached the maximum number of searches allowed "
    "({max_tool_calls}). You MUST provide a final answer now using the "
    "information you have gathered. DO NOT request any more tool calls."
)

SKIPPED_CALLS_NOTICE = (
    " These requested calls were NOT executed and will not be: {calls}."
)


@dataclass
class Budget:
    """Round-trip and tool-call counters for one run. Never reset."""

    max_iterations: int
    max_tool_calls: int
    iterations_used: int = 0
    tool_calls_used: int = 0

    @property
    def tools_available(self) -> bool:
        return self.tool_calls_used < self.max_tool_calls


@dataclass
class _RunState:
    transcript: Transcript
    budget: Budget
    usage: Usage = field(default_factory=Usage)
    queries: list[str] = field(default_factory=list)
    sources: list[SearchSource] = field(default_factory=list)
    skipped: list[ToolCall] = field(default_factory=list)
    result: RunResult | None = None

    def failed(self, error: SearchLoopError) -> FailedRun:
        return FailedRun(
            error=error,
            tool_calls_used=self.budget.tool_calls_used,
            iterations_used=self.budget.iterations_used,
            usage=self.usage,
        )

    def search_metadata(self) -> SearchMetadata | None:
        if not self.sources:
            return None
        return SearchMetadata(query=", ".join(self.queries), sources=tuple(self.sources))


class Runner:
    """Drives an agent's bounded tool-calling loop.

    Each run owns a fresh transcript, seeded with the agent's system
    prompt and the question. Every iteration streams the transcript to the
    provider, folds the stream into one assistant turn and then either
    executes the requested tool calls, returns the answer, or fails.
    ``max_iterations`` caps provider round-trips and ``max_tool_calls``
    caps executed tool calls across the whole run. Once the tool budget is
    spent the tools are no longer offered and the model is told to answer.

    ``run()`` drains ``iter()``. ``iter()`` is the streaming entry point.

    Args:
        config: Budgets and sampling options.
        usage_sink: Receives one :class:`UsageRecord` per provider call.
    """

    def __init__(
        self,
        config: RunConfig | None = None,
        usage_sink: UsageSink | None = None,
    ):
        self.config = config or RunConfig()
        self.usage_sink = usage_sink

    async def run(
        self,
        agent: Agent,
        question: str | Sequence[Message],
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Run the loop to completion and return its result.

        If *timeout* elapses or *cancel_event* is set first, the in-flight
        provider read or tool call is cancelled and a ``FailedRun`` with
        :class:`Cancelled` is returned. Cancelling the calling task
        cancels the run and propagates.
        """
        state = self._new_state(agent, question)
        loop_task = asyncio.ensure_future(self._drain(agent, state))
        waiters = {loop_task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            loop_task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if loop_task.done():
            return loop_task.result()

        if cancel_event is not None and cancel_event.is_set():
            reason = "cancel requested by caller"
        else:
            reason = f"timed out after {timeout}s"
        loop_task.cancel()
        await asyncio.wait({loop_task})
        logger.warning(f"{agent.name} run abandoned: {reason}")
        return state.failed(Cancelled(reason))

    async def iter(
        self, agent: Agent, question: str | Sequence[Message],
    ) -> AsyncIterator[StreamEvent]:
        """Run the loop, yielding events as execution proceeds.

        The last event is always a :class:`RunCompleteEvent`.
        """
        state = self._new_state(agent, question)
        async for event in self._iter(agent, state):
            yield event

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _new_state(
        self, agent: Agent, question: str | Sequence[Message],
    ) -> _RunState:
        transcript = Transcript()
        if isinstance(question, str):
            transcript.append(system(agent.system_prompt))
            transcript.append(user(question))
        else:
            prior = list(question)
            if not prior:
                raise ValueError("Cannot run an empty conversation")
            transcript.extend(prior)
            if not transcript.has_system_turn:
                transcript.messages.insert(0, system(agent.system_prompt))
        return _RunState(
            transcript=transcript,
            budget=Budget(
                max_iterations=self.config.max_iterations,
                max_tool_calls=self.config.max_tool_calls,
            ),
        )

    async def _drain(self, agent: Agent, state: _RunState) -> RunResult:
        result: RunResult | None = None
        async for event in self._iter(agent, state):
            if isinstance(event, RunCompleteEvent):
                result = event.result
        if result is None:
            raise RuntimeError("iter() ended without emitting RunCompleteEvent")
        return result

    async def _iter(
        self, agent: Agent, state: _RunState,
    ) -> AsyncIterator[StreamEvent]:
        async with agent_span(
            agent.name, agent.model,
            self.config.max_iterations, self.config.max_tool_calls,
        ) as span:
            try:
                async for event in self._loop(agent, state):
                    yield event
            except SearchLoopError as e:
                record_error(span, e)
                logger.error(f"{agent.name} failed: {type(e).__name__}: {e}")
                state.result = state.failed(e)
            record_outcome(
                span, state.budget.tool_calls_used, state.budget.iterations_used,
            )
        yield RunCompleteEvent(result=state.result)

    async def _loop(
        self, agent: Agent, state: _RunState,
    ) -> AsyncIterator[StreamEvent]:
        budget = state.budget
        transcript = state.transcript

        while budget.iterations_used < budget.max_iterations:
            offer_tools = budget.tools_available
            if not offer_tools and budget.iterations_used > 0:
                notice = FORCE_ANSWER_NOTICE.format(max_tool_calls=budget.max_tool_calls)
                if state.skipped:
                    notice += SKIPPED_CALLS_NOTICE.format(
                        calls=", ".join(_describe_call(c) for c in state.skipped)
                    )
                    state.skipped = []
                transcript.append(system(notice))
                yield RunItemEvent(
                    name="notice", iteration=budget.iterations_used + 1,
                    data={"content": notice},
                )

            budget.iterations_used += 1
            iteration = budget.iterations_used
            logger.info(
                f"{agent.name} iteration {iteration}/{budget.max_iterations} "
                f"(tool calls {budget.tool_calls_used}/{budget.max_tool_calls}, "
                f"tools offered: {offer_tools})"
            )

            acc = TurnAccumulator()
            started = time.monotonic()
            async with completion_span(
                agent.provider.name, agent.model, iteration, offer_tools,
            ) as cspan:
                try:
                    async with aclosing(agent.provider.stream_complete(
                        model=agent.model,
                        messages=transcript.model_dump_messages(),
                        tools=agent.tool_invoker.schemas() if offer_tools else None,
                        temperature=self.config.temperature,
                        max_tokens=self.config.max_tokens,
                    )) as stream:
                        async for chunk in stream:
                            acc.feed(chunk)
                            if chunk.content_delta:
                                yield RawResponseEvent(
                                    content=chunk.content_delta, iteration=iteration,
                                )
                            if chunk.reasoning_delta:
                                yield ReasoningEvent(
                                    content=chunk.reasoning_delta, iteration=iteration,
                                )
                except SearchLoopError as e:
                    record_error(cspan, e)
                    raise
                record_usage(cspan, acc.usage)
            await self._record_usage(agent, state, acc, iteration, started, offer_tools)

            turn = acc.finalize()
            transcript.append(turn)
            logger.debug(
                f"Assistant turn: {len(turn.content)} chars, "
                f"{len(turn.tool_calls)} tool call(s)"
            )

            if turn.tool_calls:
                logger.info(f"Model requested {len(turn.tool_calls)} tool call(s)")
                if not budget.tools_available:
                    logger.warning(
                        f"Max tool calls ({budget.max_tool_calls}) reached; "
                        f"forcing a final response"
                    )
                    notice = TOOL_LIMIT_NOTICE.format(max_tool_calls=budget.max_tool_calls)
                    transcript.append(system(notice))
                    yield RunItemEvent(
                        name="notice", iteration=iteration, data={"content": notice},
                    )
                    continue

                for position, call in enumerate(turn.tool_calls):
                    if not budget.tools_available:
                        state.skipped = list(turn.tool_calls[position:])
                        logger.warning(
                            f"Skipping {len(state.skipped)} tool call(s): "
                            f"max tool calls ({budget.max_tool_calls}) reached"
                        )
                        break
                    budget.tool_calls_used += 1
                    output, is_error = await self._execute_one(agent, call, state)
                    transcript.append(ToolCallResultMessage(
                        role=MessageRole.TOOL, content=output, tool_call_id=call.id,
                    ))
                    yield RunItemEvent(name="tool_call", iteration=iteration, data={
                        "tool_name": call.name, "call_id": call.id,
                        "output": output, "is_error": is_error,
                    })
                continue

            if turn.content:
                logger.info(
                    f"{agent.name} answered after {iteration} iteration(s) "
                    f"and {budget.tool_calls_used} tool call(s)"
                )
                state.result = CompletedRun(
                    text=turn.content,
                    tool_calls_used=budget.tool_calls_used,
                    iterations_used=iteration,
                    reasoning=turn.reasoning,
                    usage=state.usage,
                    search_metadata=state.search_metadata(),
                )
                yield RunItemEvent(
                    name="message", iteration=iteration, data={"content": turn.content},
                )
                return

            raise EmptyResponseError(iteration)

        raise BudgetExhaustedError(budget.max_iterations)

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _execute_one(
        self, agent: Agent, call: ToolCall, state: _RunState,
    ) -> tuple[str, bool]:
        async with tool_span(call.name, call.id) as span:
            try:
                result = await agent.tool_invoker.invoke(call)
            except RecoverableToolError as e:
                logger.warning(f"Tool {call.name} ({call.id}) failed: {e}")
                record_error(span, e)
                return error_payload(e), True
            except SearchLoopError as e:
                record_error(span, e)
                raise
            except Exception as e:
                logger.error(f"Tool {call.name} ({call.id}) raised: {type(e).__name__}: {e}")
                record_error(span, e)
                return error_payload(f"Error calling {call.name}: {type(e).__name__}: {e}"), True

        if isinstance(result.payload, SearchResponse):
            state.queries.append(result.payload.query)
            state.sources.extend(
                SearchSource(title=hit.title, url=hit.link, snippet=hit.snippet)
                for hit in result.payload.organic
            )
            logger.info(
                f"Search {result.payload.query!r} returned "
                f"{len(result.payload.organic)} result(s)"
            )
        return result.output, False

    async def _record_usage(
        self, agent: Agent, state: _RunState, acc: TurnAccumulator,
        iteration: int, started: float, offer_tools: bool,
    ) -> None:
        if acc.usage is not None:
            state.usage = state.usage + acc.usage
        if self.usage_sink is None:
            return
        await self.usage_sink.record(UsageRecord(
            agent_name=agent.name,
            provider=agent.provider.name,
            model=agent.model,
            iteration=iteration,
            usage=acc.usage or Usage(),
            latency_ms=int((time.monotonic() - started) * 1000),
            tool_calls_offered=offer_tools,
        ))


def _describe_call(call: ToolCall) -> str:
    arguments = call.arguments if len(call.arguments) <= 200 else call.arguments[:200] + "..."
    return f"{call.name}({arguments}) [id {call.id}]"
