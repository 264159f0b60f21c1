import httpx
from typing import List, Dict, Optional


class OllamaClient:
    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def embed(self, model: str, texts: List[str]) -> List[List[float]]:
        # batch endpoint: one vector per input, in input order
        async with httpx.AsyncClient(timeout=120, transport=self._transport) as client:
            r = await client.post(
                f"{self.base_url}/api/embed",
                json={"model": model, "input": texts},
            )
            r.raise_for_status()
            data = r.json()
            return data["embeddings"]

    async def chat(self, model: str, messages: List[Dict[str, str]]) -> str:
        # Non-streaming
        async with httpx.AsyncClient(timeout=300, transport=self._transport) as client:
            r = await client.post(
                f"{self.base_url}/api/chat",
                json={
                    "model": model,
                    "messages": messages,
                    "stream": False,
                    "options": {"temperature": 0.0},
                },
            )
            r.raise_for_status()
            data = r.json()
            # Ollama returns: {"message": {"role": "...", "content": "..."}, ...}
            return data["message"]["content"]
