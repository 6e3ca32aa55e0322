"""
Scan Vision Clients
===================
Identification and analysis services backed by Claude vision.

Both calls send the scanned image(s) and ask for a JSON object back, which is
validated with the pydantic models in batch_queue. Any failure (missing key,
API error, unparseable reply) is raised as ServiceUnavailable so the stages
record it against the item and move on.

FERPA: the roster is never sent; the model only reads what is on the page
and matching against students happens locally (see roster.py).
"""
import base64
import json
import logging
from pathlib import Path

import anthropic
from pydantic import ValidationError

from ..batch_queue import AnalysisResult, Identification
from ..config import config
from ..errors import ServiceUnavailable

logger = logging.getLogger(__name__)

MIME_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
}

IDENTIFY_PROMPT = """Identify whose work this scanned page is. Return ONLY a JSON object:
{
    "matchedViaCode": true if a printed student code or QR label is readable,
    "parsedCode": "the code exactly as printed, or null",
    "rawHandwrittenName": "the handwritten student name exactly as written, or null",
    "confidence": "high", "medium" or "low" (how sure you are of the code/name reading),
    "questionId": "printed question id if present, or null"
}

Important:
- Extract exactly what you see, don't guess
- Return ONLY the JSON, no other text"""

ANALYZE_PROMPT = """You are grading a student's handwritten math work.
{pages}
Return ONLY a JSON object:
{{
    "ocrText": "all text and math you can read",
    "problemIdentified": "the problem being solved",
    "approachAnalysis": "how the student approached it",
    "rubricScores": [{{"criterion": "...", "score": 0, "maxScore": 0, "feedback": "..."}}],
    "misconceptions": ["short misconception statements"],
    "totalScore": {{"earned": 0, "possible": 0, "percentage": 0}},
    "grade": 0-100,
    "gradeJustification": "...",
    "feedback": "feedback addressed to the student",
    "nysStandard": "standard code or null",
    "regentsScore": 0-4 or null,
    "regentsScoreJustification": "... or null"
}}
{rubric}
IMPORTANT: Only grade what you can CLEARLY see. If work is unclear or cut off, mark it incomplete rather than guessing."""


def image_block(image_ref):
    """Claude image content block from a data URL or an image file path."""
    if image_ref.startswith('data:'):
        header, _, data = image_ref.partition(',')
        media_type = header[5:].split(';')[0] or 'image/png'
    else:
        path = Path(image_ref)
        media_type = MIME_TYPES.get(path.suffix.lower())
        if media_type is None:
            raise ServiceUnavailable(f"Unsupported image type: {path.suffix}")
        try:
            data = base64.b64encode(path.read_bytes()).decode('utf-8')
        except OSError as e:
            raise ServiceUnavailable(f"Error reading image: {e}") from e

    return {
        "type": "image",
        "source": {"type": "base64", "media_type": media_type, "data": data},
    }


def parse_json_reply(text):
    """Parse a JSON reply, tolerating a ```json fenced block."""
    text = text.strip()
    if text.startswith('```'):
        lines = text.split('\n')
        text = '\n'.join(lines[1:-1])
    return json.loads(text)


def format_rubric(rubric_steps):
    if not rubric_steps:
        return ""
    lines = ["Grade against this rubric:"]
    for step in rubric_steps:
        lines.append(f"  Step {step['step_number']}: {step['description']} ({step['points']} pts)")
    return "\n".join(lines)


class AnthropicScanService:
    """Implements both identify() and analyze() with one Claude client."""

    def __init__(self, api_key=None, model=None, rubric_steps=None, client=None, max_tokens=2000):
        self.model = model or config.scan_model
        self.rubric_steps = rubric_steps
        self.max_tokens = max_tokens
        self._client = client
        self._api_key = api_key if api_key is not None else config.anthropic_api_key

    @property
    def client(self):
        if self._client is None:
            if not self._api_key:
                raise ServiceUnavailable("ANTHROPIC_API_KEY not configured")
            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def _ask(self, content):
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIError as e:
            raise ServiceUnavailable(f"Vision API error: {e}") from e

        response_text = response.content[0].text
        try:
            return parse_json_reply(response_text)
        except json.JSONDecodeError as e:
            logger.error("AI returned non-JSON response: %s", response_text[:200])
            raise ServiceUnavailable(f"Failed to parse AI response: {e}") from e

    def identify(self, image_ref) -> Identification:
        data = self._ask([image_block(image_ref), {"type": "text", "text": IDENTIFY_PROMPT}])
        try:
            return Identification.model_validate(data)
        except ValidationError as e:
            raise ServiceUnavailable(f"Invalid identification response: {e}") from e

    def analyze(self, image_refs) -> AnalysisResult:
        if not image_refs:
            raise ServiceUnavailable("No images to analyze")

        pages = ""
        if len(image_refs) > 1:
            pages = f"The {len(image_refs)} attached pages are ONE answer; grade them together as a single submission.\n"
        prompt = ANALYZE_PROMPT.format(pages=pages, rubric=format_rubric(self.rubric_steps))

        content = [image_block(ref) for ref in image_refs]
        content.append({"type": "text", "text": prompt})
        data = self._ask(content)
        try:
            return AnalysisResult.model_validate(data)
        except ValidationError as e:
            raise ServiceUnavailable(f"Invalid analysis response: {e}") from e
