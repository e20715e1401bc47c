"""Gemini / Hugging Face collaborators.

Everything that leaves the process goes through here. Provider output is
parsed into strict pydantic models before it can become a HousePlan;
anything that does not fit falls back to the template plan.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence

import requests
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import Settings, get_settings
from .errors import ProviderError, ProviderUnavailable, SchemaMismatch
from .fallback import build_fallback_plan
from .plan_generator import COST_CATEGORIES, AIEnhancedData, CostBreakdown, HousePlan, validate_budget
from .random_utils import epoch_millis


logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
HUGGINGFACE_URL = "https://api-inference.huggingface.co/models/{model}"


@retry(
    reraise=True,
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.7, min=1, max=6),
    retry=retry_if_exception_type(ProviderUnavailable),
)
def _post(session: requests.Session, url: str, timeout: float, **kwargs: Any) -> requests.Response:
    try:
        resp = session.post(url, timeout=timeout, **kwargs)
    except requests.RequestException as e:
        raise ProviderUnavailable(str(e)) from e
    if resp.status_code == 429 or resp.status_code >= 500:
        raise ProviderUnavailable(f"HTTP {resp.status_code}")
    if resp.status_code >= 400:
        raise ProviderError(f"HTTP {resp.status_code}: {resp.text[:200]}")
    return resp


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        image_model: str = "gemini-2.0-flash-preview-image-generation",
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.image_model = image_model
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> Optional["GeminiClient"]:
        settings = settings or get_settings()
        if not settings.google_api_key:
            return None
        return cls(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
            image_model=settings.gemini_image_model,
            timeout=settings.request_timeout,
        )

    def _generate(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = _post(
            self.session,
            GEMINI_URL.format(model=model),
            self.timeout,
            params={"key": self.api_key},
            json=payload,
        )
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError("Gemini returned a non-JSON body") from e

    @staticmethod
    def _parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        candidates = data.get("candidates") or [{}]
        return (candidates[0].get("content") or {}).get("parts") or []

    def generate_text(self, prompt: str, temperature: float = 0.7, max_output_tokens: int = 2000) -> str:
        data = self._generate(
            self.model,
            {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"temperature": temperature, "maxOutputTokens": max_output_tokens},
            },
        )
        return "".join(part.get("text", "") for part in self._parts(data))

    def generate_image(self, prompt: str) -> Optional[str]:
        """First inline image of the response as a data URI, or None."""
        data = self._generate(
            self.image_model,
            {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
            },
        )
        for part in self._parts(data):
            inline = part.get("inlineData") or part.get("inline_data") or {}
            if inline.get("data"):
                mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return f"data:{mime};base64,{inline['data']}"
        return None


class HuggingFaceImageClient:
    def __init__(
        self,
        token: str,
        model: str = "black-forest-labs/FLUX.1-schnell",
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
    ) -> None:
        self.token = token
        self.model = model
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> Optional["HuggingFaceImageClient"]:
        settings = settings or get_settings()
        if not settings.huggingface_token:
            return None
        return cls(settings.huggingface_token, model=settings.huggingface_model, timeout=settings.request_timeout)

    def text_to_image(self, prompt: str) -> str:
        resp = _post(
            self.session,
            HUGGINGFACE_URL.format(model=self.model),
            self.timeout,
            headers={"Authorization": f"Bearer {self.token}"},
            json={"inputs": prompt},
        )
        mime = resp.headers.get("content-type", "image/png").split(";")[0]
        if not mime.startswith("image/"):
            raise ProviderError(f"Hugging Face returned {mime} instead of an image")
        return f"data:{mime};base64,{base64.b64encode(resp.content).decode('ascii')}"


# --- boundary schema -------------------------------------------------------

Amount = Annotated[float, Field(ge=0, allow_inf_nan=False)]


class AIPlanPayload(BaseModel):
    # json.loads lets NaN and Infinity through; they cannot become whole KES
    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)

    house_type: str = Field(alias="houseType", min_length=1)
    style: str = Field(min_length=1)
    bedrooms: int = Field(gt=0)
    size: float = Field(gt=0, allow_inf_nan=False)
    plot_size: float = Field(alias="plotSize", gt=0, allow_inf_nan=False)
    roofing: str
    interior_finish: str = Field(alias="interiorFinish")
    cost_breakdown: Dict[str, Amount] = Field(alias="costBreakdown")
    timeline: str
    notes: List[str] = Field(default_factory=list)
    ai_prompts: List[str] = Field(default_factory=list, alias="aiPrompts")
    recommendations: str = ""
    cost_optimization: str = Field(default="", alias="costOptimization")
    materials: str = ""

    @field_validator("cost_breakdown")
    @classmethod
    def _all_twelve(cls, v: Dict[str, float]) -> Dict[str, float]:
        missing = [name for name in COST_CATEGORIES if name not in v]
        if missing:
            raise ValueError(f"missing cost categories: {', '.join(missing)}")
        return v

    def to_house_plan(self, budget: int, location: str, now: Optional[datetime] = None) -> HousePlan:
        enhanced = None
        if self.recommendations or self.cost_optimization or self.materials:
            enhanced = AIEnhancedData(
                recommendations=self.recommendations,
                cost_optimization=self.cost_optimization,
                materials=self.materials,
                timeline=self.timeline,
                ai_prompts=tuple(self.ai_prompts),
            )
        stamp = epoch_millis(now or datetime.now().astimezone())
        return HousePlan(
            id=f"ai-plan-{budget}-{stamp}",
            budget=budget,
            house_type=self.house_type,
            style=self.style,
            size=round(self.size),
            plot_size=round(self.plot_size),
            bedrooms=self.bedrooms,
            roofing=self.roofing,
            interior_finish=self.interior_finish,
            cost_breakdown=CostBreakdown.from_mapping(self.cost_breakdown),
            timeline=self.timeline,
            notes=tuple(self.notes),
            ai_prompts=tuple(self.ai_prompts[:3]),
            location=location,
            ai_enhanced=enhanced,
            source="google",
        )


class AIEnhancementPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    recommendations: str
    cost_optimization: str = Field(default="", alias="costOptimization")
    materials: str = ""
    timeline: str = ""
    ai_prompts: List[str] = Field(default_factory=list, alias="aiPrompts")

    def to_enhanced(self) -> AIEnhancedData:
        return AIEnhancedData(
            recommendations=self.recommendations,
            cost_optimization=self.cost_optimization,
            materials=self.materials,
            timeline=self.timeline,
            ai_prompts=tuple(self.ai_prompts[:3]),
        )


_PROMPT_LIST = TypeAdapter(List[str])

_FENCED = re.compile(r"```(?:json)?\s*\n(.*?)\n\s*```", re.DOTALL)
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


def extract_json(text: str, array: bool = False) -> Any:
    """Parse the JSON an LLM wrapped in prose or a ```json fence.

    Raises ValueError (json.JSONDecodeError) when nothing parses.
    """
    fenced = _FENCED.search(text or "")
    if fenced:
        return json.loads(fenced.group(1))
    match = (_ARRAY if array else _OBJECT).search(text or "")
    return json.loads(match.group(0) if match else text)


def parse_plan_payload(text: str) -> AIPlanPayload:
    try:
        data = extract_json(text)
    except ValueError as e:
        raise SchemaMismatch("AI returned non-JSON content") from e
    try:
        return AIPlanPayload.model_validate(data)
    except ValidationError as e:
        raise SchemaMismatch("AI returned JSON that does not match the plan schema") from e


# --- operations ------------------------------------------------------------

@dataclass(frozen=True)
class PlanResult:
    """Either a parsed AI plan or the template that replaced it."""

    source: Literal["google", "fallback"]
    plan: HousePlan
    reason: str = ""


def _plan_prompt(budget: int, location: str, preferences: str) -> str:
    categories = ",\n".join(f'    "{name}": number' for name in COST_CATEGORIES)
    return f"""You are an expert Kenyan architect and construction consultant. Generate a comprehensive house plan for a budget of KES {budget:,} in {location}.

Additional preferences: {preferences}

Consider Kenyan building costs, materials, labor rates, permits, and regulations. Provide realistic and buildable recommendations.

Respond with a JSON object containing:
{{
  "houseType": "descriptive house type (e.g., 3-Bedroom Modern Family House)",
  "style": "architectural style",
  "bedrooms": number,
  "size": number (square meters),
  "plotSize": number (square meters for the plot),
  "roofing": "roofing material type",
  "interiorFinish": "interior finish type",
  "costBreakdown": {{
{categories}
  }},
  "timeline": "construction timeline (e.g., 6-8 months)",
  "notes": ["practical tip 1", "practical tip 2", "practical tip 3"],
  "aiPrompts": ["detailed AI image prompt 1", "detailed AI image prompt 2", "detailed AI image prompt 3"],
  "recommendations": "architectural recommendations specific to this budget",
  "costOptimization": "specific cost-saving suggestions",
  "materials": "recommended materials for Kenyan climate"
}}

Ensure all costs add up to approximately the given budget. Make recommendations practical and achievable in Kenya."""


def generate_ai_plan(
    budget: int,
    location: str = "Kenya",
    preferences: str = "",
    client: Optional[GeminiClient] = None,
    now: Optional[datetime] = None,
) -> PlanResult:
    """Ask Gemini for a plan; any failure yields the template plan instead."""
    budget = validate_budget(budget)

    def fallback(reason: str) -> PlanResult:
        plan = build_fallback_plan(budget, location, preferences, reason=reason, now=now)
        return PlanResult("fallback", plan, reason)

    if client is None:
        return fallback("Missing GOOGLE_API_KEY")

    logger.info("Requesting AI plan for KES %s in %s", budget, location)
    try:
        text = client.generate_text(_plan_prompt(budget, location, preferences), temperature=0.7, max_output_tokens=4000)
    except ProviderError as e:
        logger.error("Google API error: %s", e)
        return fallback(f"Google API error: {e}")

    try:
        plan = parse_plan_payload(text).to_house_plan(budget, location, now)
    except SchemaMismatch as e:
        logger.error("%s, returning fallback plan", e)
        return fallback(str(e))
    except (ValueError, OverflowError) as e:
        logger.error("AI plan could not be converted (%s), returning fallback plan", e)
        return fallback("AI returned values that cannot form a plan")

    return PlanResult("google", plan)


TEMPLATE_ENHANCEMENT_PROMPTS = (
    "A modern Kenyan house with traditional touches, realistic architecture",
    "Exterior view of an affordable house in Kenya, well-designed and practical",
    "Interior of a comfortable Kenyan home, natural lighting and local materials",
)


def enhance_plan(
    budget: int,
    location: str = "Kenya",
    preferences: str = "",
    client: Optional[GeminiClient] = None,
) -> AIEnhancedData:
    """Architect-style recommendations for a budget.

    Raises ProviderError when no key is configured or the call fails;
    prose answers are kept as recommendations rather than rejected.
    """
    budget = validate_budget(budget)
    if client is None:
        raise ProviderError("Missing GOOGLE_API_KEY")

    prompt = f"""You are an expert architect and construction consultant specializing in Kenyan housing development. Generate enhanced house plan recommendations for a budget of KES {budget:,}.

Location: {location}
Additional preferences: {preferences}

Please provide:
1. Detailed architectural recommendations with specific Kenyan considerations
2. Cost optimization suggestions
3. Material recommendations suitable for Kenyan climate
4. Timeline insights
5. 3 highly detailed visual prompts for AI image generation that capture the essence of the recommended house design

Respond in JSON format with these fields:
{{
  "recommendations": "detailed architectural advice",
  "costOptimization": "specific cost-saving suggestions",
  "materials": "recommended materials for Kenyan climate",
  "timeline": "construction timeline insights",
  "aiPrompts": ["prompt1", "prompt2", "prompt3"]
}}"""
    text = client.generate_text(prompt, temperature=0.7, max_output_tokens=2000)
    try:
        return AIEnhancementPayload.model_validate(extract_json(text)).to_enhanced()
    except ValueError:
        logger.warning("Enhancement was not JSON; keeping it as plain recommendations")
        return AIEnhancedData(
            recommendations=text[:500],
            cost_optimization="AI-generated cost optimization suggestions",
            materials="AI-recommended materials for Kenyan climate",
            timeline="AI-enhanced timeline insights",
            ai_prompts=TEMPLATE_ENHANCEMENT_PROMPTS,
        )


@dataclass(frozen=True)
class PromptVariations:
    source: Literal["google", "fallback"]
    prompts: List[str]


def template_prompts(plan: HousePlan, location: str = "Kenya") -> List[str]:
    return [
        f"Exterior {plan.house_type.lower()} in {location}, {plan.style.lower()} style, "
        f"{plan.roofing.lower()} roof, natural light, landscaping, photorealistic",
        f"Interior living room of a {plan.style.lower()} {plan.bedrooms}-bedroom house, "
        f"{plan.interior_finish.lower()} floors, Kenyan context, soft daylight, realistic",
        f"Aerial view of {plan.size}m² house on {plan.plot_size}m² plot in {location}, "
        "driveway, garden, modern materials, high detail",
    ]


def generate_prompt_variations(
    plan: HousePlan,
    location: str = "Kenya",
    client: Optional[GeminiClient] = None,
) -> PromptVariations:
    if client is not None:
        prompt = (
            "You are a Kenyan architectural visual prompt expert. Generate succinct, high-quality prompts "
            "for image models. Output JSON array of 3 strings only.\n\n"
            f"Create 3 diverse visual prompts for a {plan.bedrooms}-bedroom {plan.style} house "
            f"(type: {plan.house_type}) in {location}. Roofing: {plan.roofing}. "
            f"Interior: {plan.interior_finish}. Size: {plan.size}m² on {plan.plot_size}m² plot. "
            "Focus on realistic materials, lighting, and camera angles.\n\n"
            "Return only a JSON array of 3 strings."
        )
        try:
            text = client.generate_text(prompt, temperature=0.6, max_output_tokens=800)
            prompts = [p for p in _PROMPT_LIST.validate_python(extract_json(text, array=True)) if p.strip()]
            if prompts:
                return PromptVariations("google", prompts[:3])
            logger.error("Google returned an empty prompt list: %s", text)
        except ProviderError as e:
            logger.error("Google call failed: %s", e)
        except ValueError as e:
            logger.error("Google returned non-array response: %s", e)

    return PromptVariations("fallback", template_prompts(plan, location))


@dataclass(frozen=True)
class VisualsResult:
    provider: Literal["google", "huggingface"]
    images: List[str]


def generate_visuals(
    prompts: Sequence[str],
    gemini: Optional[GeminiClient] = None,
    huggingface: Optional[HuggingFaceImageClient] = None,
) -> VisualsResult:
    """Render up to three prompts as data-URI images."""
    if not prompts:
        raise ValueError("prompts must be a non-empty list")
    prompts = list(prompts)[:3]

    if gemini is not None:
        images: List[str] = []
        for p in prompts:
            try:
                image = gemini.generate_image(f"Generate a photorealistic architectural image. {p}")
            except ProviderError as e:
                logger.error("Google image gen error: %s", e)
                continue
            if image:
                images.append(image)
        if images:
            return VisualsResult("google", images)

    if huggingface is not None:
        return VisualsResult("huggingface", [huggingface.text_to_image(p) for p in prompts])

    raise ProviderError("No image provider configured. Please add GOOGLE_API_KEY or HUGGING_FACE_ACCESS_TOKEN.")
