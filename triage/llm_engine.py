"""
LLM Reply Generator — Google Gemini Integration (google.genai SDK).

An optional ReplyGenerator that phrases replies for non-assessment
intents with Gemini. It only ever produces display text: intent,
severity and escalation are decided by the rule-based components.

  - System prompt with safety rules and the emergency hotline
  - Async generation with a hard timeout
  - JSON response parsing with fallback extraction
"""

import asyncio
import json
import logging
import re

from google import genai
from google.genai import types

import config
from triage.errors import ReplyGenerationError

logger = logging.getLogger(__name__)

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "hi": "Hindi",
    "te": "Telugu",
    "ta": "Tamil",
    "bn": "Bengali",
    "mr": "Marathi",
}

# ── System Prompt ──────────────────────────────────────────────────────────

SYSTEM_PROMPT = """You are a community health assistant reachable over web chat, WhatsApp and SMS.
You are empathetic, clear and brief. Many users are in rural areas and read on basic phones.

## CRITICAL SAFETY RULES (NEVER VIOLATE)
- You are NOT a doctor. NEVER diagnose conditions or prescribe treatments or doses.
- If anything sounds like an emergency, tell the user to call {hotline} immediately.
- Never ask for personal identifiers.

## STYLE
- At most 3 short sentences. No markdown, no emojis, no lists.
- Reply in the user's language.

## RESPONSE FORMAT
You MUST respond with ONLY a valid JSON object (no markdown, no extra text). Schema:
{{
  "response": "Your message to the user"
}}
""".format(hotline=config.EMERGENCY_HOTLINE)


# ── Prompt Builder ─────────────────────────────────────────────────────────

def build_reply_prompt(intent: str, entities: dict[str, str], language: str) -> str:
    """Build the per-turn prompt. Only the classified intent and entities are sent."""
    entity_str = ", ".join(f"{k}: {v}" for k, v in entities.items()) or "None"
    return f"""## CURRENT TURN
- **Detected Intent**: {intent}
- **Extracted Details**: {entity_str}
- **Reply Language**: {LANGUAGE_NAMES.get(language, 'English')}

## YOUR TASK
- If intent is "greeting": Welcome the user and ask how you can help.
- If intent is "vaccination_info": Offer help with vaccine schedules for children and adults.
- If intent is "medication_query": Give general guidance and advise following the prescribed dose.
- If intent is "prevention": Share one or two practical prevention tips.
- If intent is "health_education": Offer to explain the health topic they are curious about.
- If intent is "emergency": Advise calling {config.EMERGENCY_HOTLINE} IMMEDIATELY.
- If intent is "farewell": Say goodbye warmly.
- Otherwise: Ask the user to describe their symptoms or question.

Respond with ONLY a valid JSON object."""


class GeminiReplyGenerator:
    """ReplyGenerator backed by the Gemini API."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout: float = config.LLM_TIMEOUT_SECONDS,
        client: genai.Client | None = None,
    ):
        self.api_key = api_key or config.GOOGLE_API_KEY
        self.model_name = model_name or config.GEMINI_MODEL
        self.timeout = timeout

        if client is None and not self.api_key:
            raise ValueError(
                "Google API key is required. Set GOOGLE_API_KEY in your .env file.\n"
                "Get a key at: https://aistudio.google.com/apikey"
            )

        self.client = client or genai.Client(api_key=self.api_key)

    async def generate(self, intent: str, entities: dict[str, str], language: str) -> str:
        """
        Generate display text for a classified turn.

        Raises:
            ReplyGenerationError: API failure, timeout or unusable output.
        """
        prompt = build_reply_prompt(intent, entities, language)

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model_name,
                    contents=prompt,
                    config=types.GenerateContentConfig(
                        system_instruction=SYSTEM_PROMPT,
                        temperature=config.TEMPERATURE,
                        top_p=config.TOP_P,
                        max_output_tokens=config.MAX_OUTPUT_TOKENS,
                        response_mime_type="application/json",
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("[LLM] Gemini call timed out after %.1fs", self.timeout)
            raise ReplyGenerationError("LLM timed out") from e
        except Exception as e:
            logger.error("[LLM ERROR] %s", e)
            raise ReplyGenerationError(str(e)) from e

        return self._parse_response(response.text)

    def _parse_response(self, raw_text: str | None) -> str:
        """Extract the 'response' field, tolerating code fences and chatter."""
        if not raw_text:
            raise ReplyGenerationError("LLM returned no text")

        parsed = None

        # Attempt 1: Direct JSON parse
        try:
            parsed = json.loads(raw_text)
        except (json.JSONDecodeError, TypeError):
            pass

        # Attempt 2: Extract from markdown code blocks
        if parsed is None:
            json_match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", raw_text, re.DOTALL)
            if json_match:
                try:
                    parsed = json.loads(json_match.group(1))
                except json.JSONDecodeError:
                    pass

        # Attempt 3: Find any JSON object in the text
        if parsed is None:
            json_match = re.search(r"\{.*\}", raw_text, re.DOTALL)
            if json_match:
                try:
                    parsed = json.loads(json_match.group(0))
                except json.JSONDecodeError:
                    pass

        if isinstance(parsed, dict):
            text = parsed.get("response")
            if isinstance(text, str) and text.strip() and not self._looks_like_json(text):
                return text.strip()

        # Never show raw JSON to the user
        logger.warning("[LLM PARSE WARNING] Could not parse JSON: %s", raw_text[:200])
        raise ReplyGenerationError("Unusable LLM output")

    @staticmethod
    def _looks_like_json(text: str) -> bool:
        """Check if a string looks like raw JSON (should never be shown to user)."""
        stripped = text.strip()
        if stripped.startswith(("{", "[")):
            try:
                json.loads(stripped)
                return True
            except (json.JSONDecodeError, TypeError):
                pass
        return '"response":' in stripped
