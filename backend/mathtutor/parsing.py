from __future__ import annotations
import json
import re
from typing import Any, Dict


def extract_json_object(text: str) -> Dict[str, Any]:
    """Pull the first JSON object out of model output.

    Accepts bare JSON, a ```json fenced block, or an object embedded in prose.
    Raises ValueError when nothing parses to a dict.
    """
    text = (text or "").strip()
    candidates = [text]
    code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if code_block:
        candidates.append(code_block.group(1))
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first : last + 1])
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    raise ValueError("Failed to parse JSON object from model output")
