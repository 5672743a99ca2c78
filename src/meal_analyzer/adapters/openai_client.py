"""OpenAI Responses API adapter for vision analysis and nutrition estimates."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from meal_analyzer.services.estimator import CompletionClient
from meal_analyzer.services.vision import VisionClient


@dataclass
class OpenAIResponsesClient(VisionClient, CompletionClient):
    """Single AsyncOpenAI session serving both the detector and the estimator."""

    client: AsyncOpenAI

    @classmethod
    def create(
        cls, api_key: str, timeout: float = 60.0, max_retries: int = 2
    ) -> "OpenAIResponsesClient":
        return cls(
            client=AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        )

    async def analyze(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        image_data_url: str,
        schema: dict[str, object] | None,
        prompt: str,
    ) -> str:
        """Send the photo with the analysis prompt and return the raw output text."""
        content = [
            {"type": "input_text", "text": prompt},
            {"type": "input_image", "image_url": image_data_url},
        ]
        request: dict[str, object] = {
            "model": model,
            "input": [{"role": "user", "content": content}],
            "store": store,
        }
        if reasoning_effort:
            request["reasoning"] = {"effort": reasoning_effort}
        return await self._respond(request, schema, "meal_analysis")

    async def complete(
        self,
        *,
        model: str,
        prompt: str,
        schema: dict[str, object] | None = None,
    ) -> str:
        request: dict[str, object] = {"model": model, "input": prompt, "store": False}
        return await self._respond(request, schema, "nutrition_estimate")

    async def close(self) -> None:
        await self.client.close()

    async def _respond(
        self,
        request: dict[str, object],
        schema: dict[str, object] | None,
        schema_name: str,
    ) -> str:
        if schema is not None:
            request["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "strict": True,
                    "schema": schema,
                }
            }
        response = await self.client.responses.create(**request)
        if not response.output_text:
            raise RuntimeError(f"OpenAI returned an empty {schema_name} response")
        return response.output_text
