"""
LiteLLM chat completions for the virtual patient.

Sends the running transcript (system instructions first) to the configured
chat model and returns the patient's next utterance.
"""

from typing import Optional, Sequence

import litellm

from simpatient.errors import CompletionError
from simpatient.logger import get_logger
from simpatient.session.models import Turn

logger = get_logger(__name__)

# Drop unsupported parameters when calling APIs
litellm.drop_params = True


class PatientChat:
    """Chat-completion client role-playing the patient.

    Args:
        model: LiteLLM model identifier (e.g. "gpt-4o", "anthropic/claude-...").
        temperature: Sampling temperature.
        max_tokens: Cap on reply length; patient answers are kept short.
        api_key: Provider key; falls back to the provider's env variable.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        temperature: float = 0.8,
        max_tokens: int = 150,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key
        self.timeout = timeout

    async def complete(self, transcript: Sequence[Turn]) -> str:
        """Generate the reply to ``transcript``.

        Raises:
            CompletionError: If the model call fails or returns no content.
        """
        messages = [turn.to_message() for turn in transcript]

        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                api_key=self.api_key,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Error getting chat completion: {e}")
            raise CompletionError(f"Chat completion failed: {e}") from e

        content = response.choices[0].message.content
        if not content:
            raise CompletionError("Chat completion returned no text")
        return content.strip()
