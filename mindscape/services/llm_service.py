"""
Mindscape — LLM Service
========================
Model backends for mind map generation:
  • Remote  — Groq / Gemini in JSON mode (hybrid failover between them)
  • Local   — Ollama, free text only

Also owns the prompts and the defensive JSON recovery used for local
backends, whose output may carry commentary or be cut off after the body.
"""

import json
import logging
import asyncio
from typing import Any, Dict, Optional

import httpx
import google.generativeai as genai
from groq import AsyncGroq

from mindscape.core.config import Settings

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PROMPTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_ROLE = (
    "You are an AI assistant expert in creating learning mind maps for people "
    "with all ranges of expertise. You always respond with a JSON structure "
    "without any other text.\n\n"
    "Add suggested materials like books, blog posts, videos, websites and other "
    "resources to the \"links\" section of each subtopic.\n\n"
    "Always be very detailed and provide as much information as possible, "
    "in the most in-depth way possible.\n\n"
)

_FLAT_RULES = (
    "Return the mind map as a FLAT list. Every subtopic carries its own "
    "\"id\" and the \"parentId\" of the subtopic it belongs to "
    "(null for top-level subtopics). Never nest subtopics inside each other.\n"
    "Ids must be unique kebab-case strings.\n"
    "Always include the \"type\" field for each link: \"website\", \"tutorial\", "
    "\"video\", \"book\", \"article\", \"forum\" or any other relevant type.\n\n"
)

LOCAL_SYSTEM_PROMPT = (
    _ROLE +
    _FLAT_RULES +
    "Never greet or say anything else, just the JSON structure. "
    "Here is an example of the correct structure:\n\n"
    "{\n"
    '  "topic": "Data Structures",\n'
    '  "subtopics": [\n'
    "    {\n"
    '      "id": "arrays",\n'
    '      "parentId": null,\n'
    '      "name": "Arrays",\n'
    '      "details": "Arrays are a collection of elements identified by index or key.",\n'
    '      "links": [\n'
    "        {\n"
    '          "title": "GeeksforGeeks - Arrays in Data Structure",\n'
    '          "type": "website",\n'
    '          "url": "https://www.geeksforgeeks.org/array-data-structure/"\n'
    "        }\n"
    "      ]\n"
    "    },\n"
    "    {\n"
    '      "id": "static-vs-dynamic-arrays",\n'
    '      "parentId": "arrays",\n'
    '      "name": "Static vs Dynamic Arrays",\n'
    '      "details": "Static arrays have a fixed size; dynamic arrays resize as elements are added.",\n'
    '      "links": []\n'
    "    },\n"
    "    {\n"
    '      "id": "linked-lists",\n'
    '      "parentId": null,\n'
    '      "name": "Linked Lists",\n'
    '      "details": "A linear data structure where nodes are connected using pointers.",\n'
    '      "links": []\n'
    "    }\n"
    "  ]\n"
    "}\n\n"
    "Take this JSON structure as the blueprint and use it to create a mind map "
    "based on the user's query."
)

REMOTE_SYSTEM_PROMPT = (
    _ROLE +
    _FLAT_RULES +
    "Feel free to add as many nodes and subtopics as you like, the more the better.\n\n"
    "Output MUST be valid JSON matching this EXACT schema:\n"
    "{\n"
    '  "topic": "string",\n'
    '  "subtopics": [\n'
    "    {\n"
    '      "id": "string",\n'
    '      "parentId": "string or null",\n'
    '      "name": "string",\n'
    '      "details": "string",\n'
    '      "links": [{"title": "string", "type": "string", "url": "string"}]\n'
    "    }\n"
    "  ]\n"
    "}\n"
)


def build_user_prompt(topic: str, node_id: Optional[str] = None) -> str:
    """User turn for a full map, or for expanding one node."""
    if node_id:
        return f'Expand the subtopic "{topic}" with node ID "{node_id}".'
    return f"Create a mind map based on the user's query: {topic}"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON RECOVERY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def clean_and_parse_json(raw_text: str) -> Dict[str, Any]:
    """
    Defensive JSON extractor for free-text backends:
    1. Trim surrounding whitespace
    2. Cut everything after the LAST closing brace
    3. Parse with json.loads
    Raises ValueError on failure with diagnostic info.
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("Empty AI response received")

    cleaned = raw_text.strip()
    last_brace = cleaned.rfind("}")
    cleaned = cleaned[: last_brace + 1]

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed. Raw (first 500 chars): {raw_text[:500]}")
        raise ValueError(f"AI returned invalid JSON: {e}")

    if not isinstance(parsed, dict):
        raise ValueError(f"AI returned JSON {type(parsed).__name__}, expected an object")
    return parsed


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CLIENT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class LLMClient:
    """
    One entry point per backend family:
      • complete_json(system, user) — remote, JSON mode
      • complete_text(system, user) — local, free text
    `structured_output` tells the orchestrator which one to use.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.groq_client: Optional[AsyncGroq] = None

        if settings.USE_LOCAL_MODELS:
            logger.info(f"[LLM] Local mode: Ollama ({settings.LOCAL_MODEL}) at {settings.OLLAMA_BASE_URL}")
            return

        logger.info(f"[LLM] Remote mode, provider: {settings.AI_PROVIDER}")
        if settings.GROQ_API_KEY:
            self.groq_client = AsyncGroq(api_key=settings.GROQ_API_KEY)
            logger.info("[LLM] ✓ Groq client ready")
        else:
            logger.warning("[LLM] ✗ Groq API key missing")

        if settings.GOOGLE_API_KEY:
            genai.configure(api_key=settings.GOOGLE_API_KEY, transport="rest")
            logger.info("[LLM] ✓ Gemini client ready")
        else:
            logger.warning("[LLM] ✗ Google API key missing")

    @property
    def structured_output(self) -> bool:
        return not self.settings.USE_LOCAL_MODELS

    # ── Remote: Groq ─────────────────────────────────────────────────────────

    async def _call_groq(self, system_prompt: str, user_prompt: str) -> str:
        """Call Groq with JSON mode and temperature=0."""
        if not self.groq_client:
            raise ValueError("Groq API Key missing")

        logger.info(f"[LLM] Calling Groq ({self.settings.GROQ_MODEL})...")
        completion = await self.groq_client.chat.completions.create(
            model=self.settings.GROQ_MODEL,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0,
            max_tokens=self.settings.MAX_TOKENS,
        )
        result = completion.choices[0].message.content
        logger.info("[LLM] ✓ Groq call succeeded")
        return result

    # ── Remote: Gemini ───────────────────────────────────────────────────────

    async def _call_gemini(self, system_prompt: str, user_prompt: str) -> str:
        """Call Gemini with JSON mode and temperature=0."""
        if not self.settings.GOOGLE_API_KEY:
            raise ValueError("Google API Key missing")

        logger.info(f"[LLM] Calling Gemini ({self.settings.GEMINI_MODEL})...")
        model = genai.GenerativeModel(
            model_name=self.settings.GEMINI_MODEL,
            generation_config={
                "response_mime_type": "application/json",
                "temperature": 0,
            },
        )
        full_prompt = f"{system_prompt}\n\nUser Task:\n{user_prompt}"
        response = await asyncio.to_thread(model.generate_content, full_prompt)
        logger.info("[LLM] ✓ Gemini call succeeded")
        return response.text

    async def complete_json(self, system_prompt: str, user_prompt: str) -> str:
        """
        Remote call. In 'hybrid' mode Groq is tried first, then Gemini.
        Raises RuntimeError once every configured provider has failed.
        """
        provider = self.settings.AI_PROVIDER

        if provider == "groq":
            callers = [("Groq", self._call_groq)]
        elif provider == "gemini":
            callers = [("Gemini", self._call_gemini)]
        else:  # hybrid
            callers = [("Groq", self._call_groq), ("Gemini", self._call_gemini)]

        last_error = None
        for name, caller in callers:
            try:
                return await caller(system_prompt, user_prompt)
            except Exception as e:
                last_error = e
                logger.warning(f"[LLM] {name} failed: {str(e)[:200]}. Trying next...")

        raise RuntimeError(f"All AI providers failed. Last error: {last_error}")

    # ── Local: Ollama ────────────────────────────────────────────────────────

    async def complete_text(self, system_prompt: str, user_prompt: str) -> str:
        """Call the local Ollama server. Raises RuntimeError on transport/HTTP errors."""
        url = f"{self.settings.OLLAMA_BASE_URL.rstrip('/')}/api/generate"
        payload = {
            "model": self.settings.LOCAL_MODEL,
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
            "options": {"temperature": 0},
        }

        logger.info(f"[LLM] Calling Ollama ({self.settings.LOCAL_MODEL})...")
        try:
            async with httpx.AsyncClient(timeout=self.settings.AI_TIMEOUT_SECONDS) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RuntimeError(f"Local model call failed: {e}")

        if not isinstance(body, dict):
            raise RuntimeError(f"Local model call failed: unexpected response body {str(body)[:200]}")
        text = body.get("response", "")

        logger.info("[LLM] ✓ Ollama call succeeded")
        return text
