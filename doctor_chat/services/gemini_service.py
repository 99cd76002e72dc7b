import base64
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv
from google import genai
from google.genai import types

from doctor_chat.models.content import ContentBlock, InlineImage
from doctor_chat.models.message import Location, Message
from doctor_chat.services.context_window import build_contents
from doctor_chat.utils.exceptions import ConfigurationError, ModelCallError
from doctor_chat.utils.logger import logger

# Load environment variables from .env
load_dotenv()

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")
DEFAULT_MODEL = "gemini-2.5-flash"

SYSTEM_INSTRUCTION = """
あなたは日本で最も有名な総合病院のベテラン総合診療医です。

【重要：回答のスタイル】
- **短く、簡潔に**答えてください。長文は避けてください。
- 専門用語はなるべく使わず、誰にでもわかる言葉で話してください。
- 1回の回答で情報を詰め込みすぎず、会話のキャッチボールを大切にしてください。

【あなたの役割】
1. 患者（ユーザー）に優しく寄り添う。
2. 症状を聞き出し、可能性のある原因を考える。
3. 必要に応じて病院検索ツール（Google Maps）で近くの病院を紹介する。
4. 画像が送られた場合は、その見た目から所見を述べる。

※緊急性が高い（胸痛、呼吸困難など）場合は、すぐに救急車を呼ぶよう伝えてください。
※あなたはAIなので確定診断はできません。あくまでアドバイスにとどめてください。
"""


@dataclass
class GeminiSettings:
    """Model identifier and endpoint. The API key is read from the environment on each call."""
    model: str = DEFAULT_MODEL
    endpoint: Optional[str] = None  # override of the public Gemini endpoint
    timeout_seconds: float = 60.0

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]]) -> "GeminiSettings":
        cfg = cfg or {}
        return cls(
            model=cfg.get("model") or DEFAULT_MODEL,
            endpoint=cfg.get("endpoint") or None,
            timeout_seconds=float(cfg.get("timeout_seconds", 60)),
        )


@dataclass
class ModelReply:
    text: str
    grounding_metadata: Optional[Dict[str, Any]] = None


def get_api_key() -> str:
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    raise ConfigurationError("API key not found: set GEMINI_API_KEY", setting="GEMINI_API_KEY")


def build_generate_config(
    location: Optional[Location],
    system_instruction: str = SYSTEM_INSTRUCTION,
) -> types.GenerateContentConfig:
    """
    Maps search is always on. The retrieval config with the user's coordinates
    is only attached when the session has a location.
    """
    tool_config = None
    if location is not None:
        tool_config = types.ToolConfig(
            retrieval_config=types.RetrievalConfig(
                lat_lng=types.LatLng(latitude=location.latitude, longitude=location.longitude)
            )
        )

    return types.GenerateContentConfig(
        system_instruction=system_instruction,
        tools=[types.Tool(google_maps=types.GoogleMaps())],
        tool_config=tool_config,
    )


def to_genai_contents(blocks: Sequence[ContentBlock]) -> List[types.Content]:
    contents = []
    for block in blocks:
        parts = []
        for part in block.parts:
            if isinstance(part, InlineImage):
                parts.append(types.Part(
                    inline_data=types.Blob(mime_type=part.mime_type, data=base64.b64decode(part.data))
                ))
            elif part.text or len(block.parts) == 1:
                # Empty text is only sent when it is the block's sole part.
                parts.append(types.Part(text=part.text))
        contents.append(types.Content(role=block.role.value, parts=parts))
    return contents


def _grounding_metadata(response: types.GenerateContentResponse) -> Optional[Dict[str, Any]]:
    if not response.candidates:
        return None
    metadata = response.candidates[0].grounding_metadata
    if metadata is None:
        return None
    return metadata.model_dump(mode="json", exclude_none=True) or None


class GeminiDoctorClient:
    """
    Calls Gemini with the doctor persona and Google Maps grounding.
    A new SDK client is created per call so a missing key only fails the call that needs it.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self.settings = settings or GeminiSettings()

    def _client(self) -> genai.Client:
        http_options = types.HttpOptions(
            base_url=self.settings.endpoint,
            timeout=int(self.settings.timeout_seconds * 1000),
        )
        return genai.Client(api_key=get_api_key(), http_options=http_options)

    async def chat(
        self,
        history: Sequence[Message],
        new_text: str,
        new_images: Sequence[str] = (),
        location: Optional[Location] = None,
    ) -> ModelReply:
        """
        Send one turn to Gemini.
        :param history: Session log before the new message was appended.
        :raises ConfigurationError: no API key in the environment.
        :raises ModelCallError: network, HTTP or response failure.
        """
        client = self._client()
        blocks = build_contents(history, new_text, new_images)

        try:
            response = await client.aio.models.generate_content(
                model=self.settings.model,
                contents=to_genai_contents(blocks),
                config=build_generate_config(location),
            )
            reply = ModelReply(
                text=response.text or "",
                grounding_metadata=_grounding_metadata(response),
            )
        except Exception as e:
            logger.error(f"❌ Gemini API error in chat: {e}", exc_info=True)
            raise ModelCallError(f"Gemini call failed: {e}", model=self.settings.model) from e
        finally:
            # One SDK client per call; release its connection pool with it.
            await client.aio.aclose()

        logger.info(
            f"✅ Gemini reply received ({len(reply.text)} chars, "
            f"grounding={'yes' if reply.grounding_metadata else 'no'})"
        )
        return reply
