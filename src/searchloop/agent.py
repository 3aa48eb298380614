from searchloop.provider import ModelProvider
from searchloop.tools import Tool, ToolInvoker

DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant with web search capabilities.

IMPORTANT SEARCH GUIDELINES:
- Only use webSearch when you need current or recent information; prefer answering from existing knowledge when possible
- Use BROAD searches instead of narrow ones: one comprehensive search is better than several narrow ones
- Choose numResults by complexity: 2-4 for simple facts, 5-7 when claims need verification, 8-10 for deep research
- After searching, synthesize a comprehensive answer from the results you have
- Do NOT search again unless critical information is missing

After searching, provide a well-organized answer citing your sources."""


class Agent:
    """
    What the runner drives: a model on a provider, the system prompt that
    sets its tool-usage policy, and the tools it may call.

    Args:
        model: Model name understood by the provider.
        provider: Adapter implementing ``stream_complete``.
        system_prompt: First turn of every transcript.
        tools: Tools offered to the model while the budget allows.
        name: Label used in logs, usage records and traces.
    """

    def __init__(
            self,
            model: str,
            provider: ModelProvider,
            system_prompt: str = DEFAULT_SYSTEM_PROMPT,
            tools: list[Tool] | None = None,
            name: str = "search_agent",
    ):
        self.model = model
        self.provider = provider
        self.system_prompt = system_prompt
        self.name = name
        self.tool_invoker = ToolInvoker(tools or [])
