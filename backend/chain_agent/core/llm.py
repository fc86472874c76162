"""
LLM factory — returns the appropriate LangChain chat model based on LITELLM_MODE.

  openai  → ChatOpenAI against the OpenAI API (default)
  proxy   → ChatOpenAI pointed at a LiteLLM proxy container
  library → ChatLiteLLM using the litellm library in-process

All return the same LangChain BaseChatModel interface, so the agent node and
the summarizer are unaware of the underlying routing mechanism.
"""

from langchain_core.language_models.chat_models import BaseChatModel

from chain_agent.core.config import get_settings


def get_chat_model(
    *,
    model: str | None = None,
    temperature: float | None = None,
) -> BaseChatModel:
    """
    Return a configured, non-streaming chat model.

    Args:
        model:       Override the model name. Defaults to settings.primary_model.
        temperature: Sampling temperature. Defaults to settings.temperature.
    """
    settings = get_settings()
    model_name = model or settings.primary_model
    temperature = settings.temperature if temperature is None else temperature

    if settings.litellm_mode == "library":
        from langchain_community.chat_models import ChatLiteLLM

        return ChatLiteLLM(
            model=model_name,
            temperature=temperature,
            request_timeout=settings.llm_request_timeout,
        )

    from langchain_openai import ChatOpenAI

    kwargs: dict = {
        "model": model_name,
        "temperature": temperature,
        "timeout": settings.llm_request_timeout,
    }
    if settings.litellm_mode == "proxy":
        kwargs["base_url"] = settings.litellm_base_url
        kwargs["api_key"] = settings.litellm_master_key
    elif settings.openai_api_key:
        kwargs["api_key"] = settings.openai_api_key
    # otherwise ChatOpenAI reads OPENAI_API_KEY itself

    return ChatOpenAI(**kwargs)
