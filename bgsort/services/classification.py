import base64
import json
import logging
import re
from dataclasses import asdict, dataclass
from io import BytesIO
from pathlib import Path

from openai import APIError, APIStatusError
from PIL import Image

from bgsort.core.errors import ClassificationFailed, ClassifierUnavailable
from bgsort.services.addresses import read_image, strip_prefix
from bgsort.services.models import ModelStore

logger = logging.getLogger(__name__)

CLASSIFICATIONS = {"good", "bad", "unknown"}
FALLBACK_TEXT_LIMIT = 50

# Formats the vision endpoint accepts as-is; anything else is re-encoded to PNG
PASSTHROUGH_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}

CLASSIFICATION_PROMPT = """Examine this image and create a description, then classify the background.

Requirements:
- First, describe the foreground/main subject (under 7 words)
- Second, describe the background (under 7 words)
- Third, classify the background type:
  * "good" if the background has one of the following qualities:
  The image is clearly a very professional photograph, taken in a studio or a professionally decorated set
  OR the item is fully visible, and is in front of a nice gradient backdrop (again, not all white though!).
  * "bad" if the background is just white pixels (a white room with white walls and floor is OK),
  OR if the item image is cut off in any way, and is not showing the entire item
  OR if the item is shot at a weird rotation
  OR if the item is shown from a non-standard angle, such as from the side or the back
  OR if the item background is unprofessional looking
  OR if the item background contains a lawn, or a person, or just junk
  OR if the item background looks like a collage, or unrealistic
  OR if the photo is a densely decorated room with more than eight items in it
  OR if there are multiple items in the image, and it's not clear which one is the main subject (unless the multiple items are very similar and likely part of a set)
  * "unknown" if you cannot clearly distinguish the background type
  If any of the BAD conditions are met, ignore the GOOD conditions and classify the background as "bad"
- Fourth, summarize why you chose the background classification. If the item is GOOD, describe why in under 7 words. If there are multiple BAD violations, list them all, each under 7 words.

Respond with JSON in this exact format:
{
  "foreground": "description of foreground in under 7 words",
  "background": "description of background in under 7 words",
  "classification": "good" or "bad" or "unknown",
  "rationale": "description of rationale"
}"""


@dataclass
class ClassificationResult:
    foreground: str = "Unable to describe"
    background: str = "Unable to describe"
    classification: str = "unknown"
    rationale: str = "No rationale provided"

    @property
    def caption(self) -> str:
        return f"{self.foreground}\n{self.background}"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["caption"] = self.caption
        return data


def error_result(message: str) -> dict:
    result = ClassificationResult(
        foreground="Error",
        background=message,
        classification="unknown",
        rationale=message,
    ).to_dict()
    result["error"] = message
    return result


def _infer_from_background(background: str) -> str:
    bg = background.lower()
    if "white" in bg and any(word in bg for word in ("plain", "backdrop", "background")):
        return "bad"
    if any(word in bg for word in ("room", "studio", "color")):
        return "good"
    return "unknown"


def _from_plain_text(content: str) -> ClassificationResult:
    lines = [line.strip() for line in content.splitlines() if line.strip()]
    if len(lines) >= 2:
        return ClassificationResult(
            foreground=lines[0][:FALLBACK_TEXT_LIMIT],
            background=lines[1][:FALLBACK_TEXT_LIMIT],
        )
    return ClassificationResult(
        foreground=content[:FALLBACK_TEXT_LIMIT],
        background="Unable to determine",
    )


def parse_classification(content: str) -> ClassificationResult:
    """Parse a model reply into a result without ever raising.

    The first ``{...}`` block is read as JSON. An unrecognised
    classification is guessed from the background description; replies
    without usable JSON degrade to the first two lines of text and
    ``unknown``.
    """
    match = re.search(r"\{.*\}", content or "", re.DOTALL)
    if not match:
        logger.warning("no JSON found in model reply, using text fallback")
        return _from_plain_text(content or "")
    try:
        parsed = json.loads(match.group(0))
    except ValueError as exc:
        logger.warning("model reply is not valid JSON: %s", exc)
        return _from_plain_text(content)
    if not isinstance(parsed, dict):
        return _from_plain_text(content)

    result = ClassificationResult(
        foreground=str(parsed.get("foreground") or "Unable to describe"),
        background=str(parsed.get("background") or "Unable to describe"),
        rationale=str(parsed.get("rationale") or "No rationale provided"),
    )
    value = str(parsed.get("classification") or "").strip().lower()
    if value in CLASSIFICATIONS:
        result.classification = value
    else:
        result.classification = _infer_from_background(result.background)
    return result


def encode_image(data: bytes, mime_type: str) -> str:
    if mime_type not in PASSTHROUGH_MIME_TYPES:
        with Image.open(BytesIO(data)) as img:
            img = img.convert("RGB")
            buf = BytesIO()
            img.save(buf, "PNG")
        data, mime_type = buf.getvalue(), "image/png"
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


async def classify_image(store: ModelStore, image_url: str, storage_root: Path, prefix: str) -> ClassificationResult:
    if store.client is None:
        raise ClassifierUnavailable()

    data, mime_type = read_image(strip_prefix(image_url, prefix), storage_root)
    data_url = encode_image(data, mime_type)

    try:
        response = await store.client.chat.completions.create(
            model=store.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": CLASSIFICATION_PROMPT},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                }
            ],
            max_tokens=store.max_tokens,
        )
    except APIStatusError as exc:
        if exc.status_code == 429:
            raise ClassificationFailed(
                "OpenAI API quota exceeded. Please check your account or upgrade your plan."
            ) from exc
        if exc.status_code == 401:
            raise ClassificationFailed("OpenAI API key is invalid or expired.") from exc
        raise ClassificationFailed(str(exc)) from exc
    except APIError as exc:
        raise ClassificationFailed(str(exc)) from exc

    content = ""
    if response.choices:
        content = response.choices[0].message.content or ""
    logger.debug("model reply for %s: %s", image_url, content)
    return parse_classification(content)
