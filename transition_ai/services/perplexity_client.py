from typing import Optional

from openai import AsyncOpenAI

from transition_ai.errors import UpstreamAPIError
from transition_ai.services.gateway import CircuitOpenError, ServiceGateway, get_gateway
from transition_ai.utils.logger import logger


class PerplexityClient:
    """Text search client for Perplexity's web-grounded sonar model (async).

    ``search`` is the only operation the pipeline needs: prompt in, raw text out.
    No parsing happens here.
    """

    SYSTEM_PROMPT = (
        "You are a career transition research assistant. Search the web for real, "
        "first-hand accounts and cite sources with URLs and dates. Follow the requested output format exactly."
    )

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.perplexity.ai",
        model: str = "sonar",
        gateway: Optional[ServiceGateway] = None,
        client=None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.gateway = gateway
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "PerplexityClient":
        return cls(
            api_key=settings.perplexity_api_key,
            base_url=settings.perplexity_base_url,
            model=settings.search_model,
        )

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise UpstreamAPIError(
                    "PERPLEXITY_API_KEY not found. Set it in the environment (or .env) "
                    "before running forum search, analysis or plan generation."
                )
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def search(self, prompt: str, max_tokens: int = 1000) -> str:
        """
        Send one prompt to the search model and return the first choice's text.

        Raises:
            UpstreamAPIError: transport/auth failure after retries, open circuit,
                or a response without choices/message content.
        """
        gateway = self.gateway or get_gateway()
        try:
            response = await gateway.execute(
                "perplexity",
                self.client.chat.completions.create,
                model=self.model,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.2,
                max_tokens=max_tokens,
            )
        except UpstreamAPIError:
            raise
        except CircuitOpenError as e:
            raise UpstreamAPIError(str(e)) from e
        except Exception as e:
            logger.error(f"Perplexity API error: {e}", extra={"error_type": type(e).__name__})
            raise UpstreamAPIError(f"Perplexity API error: {e}") from e

        choices = getattr(response, "choices", None)
        if not choices:
            raise UpstreamAPIError("Unexpected response structure from Perplexity API: no choices")

        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) if message is not None else None
        if not content or not isinstance(content, str):
            raise UpstreamAPIError("Unexpected response structure from Perplexity API: empty message content")

        return content
