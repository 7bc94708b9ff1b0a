# src/config/steps.py — v1
"""Declarative pipeline step configuration.

DEFAULT_STEPS runs the juicer image, which turns a specimen into its
plain text and a thumbnail. Deployments override the list with a
JSON file (PIPELINE_STEPS_FILE) holding an array of step definitions.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

from adacta.core.models import SPECIMEN, RetryPolicy, StepDefinition

if TYPE_CHECKING:
    from adacta.config.settings import Settings

JUICER_IMAGE = "adacta10/juicer"

DEFAULT_STEPS: list[StepDefinition] = [
    StepDefinition(
        name="extract_text",
        image=JUICER_IMAGE,
        command=["juicer", "text", "/in/specimen", "/out/text"],
        inputs=[SPECIMEN],
        outputs=["text"],
        timeout_s=600.0,
    ),
    StepDefinition(
        name="thumbnail",
        image=JUICER_IMAGE,
        command=["juicer", "thumbnail", "/in/specimen", "/out/thumbnail"],
        inputs=[SPECIMEN],
        outputs=["thumbnail"],
        timeout_s=120.0,
        retry=RetryPolicy(max_attempts=3, base_delay_s=2.0),
    ),
]

# Fully qualified class paths of custom BaseStep variants, imported by
# pipeline/registry.py in addition to the container steps above.
STEP_PLUGINS: list[str] = []

_STEP_LIST = TypeAdapter(list[StepDefinition])


def step_defaults(settings: Settings) -> dict[str, Any]:
    """Field defaults applied to step entries that leave them out."""
    return {
        "timeout_s": settings.default_step_timeout_s,
        "retry": {
            "max_attempts": settings.default_max_attempts,
            "base_delay_s": settings.default_backoff_base_s,
            "backoff_factor": settings.default_backoff_factor,
        },
        "limits": {
            "memory": settings.default_memory_limit,
            "cpus": settings.default_cpu_limit,
        },
    }


def load_step_definitions(
    path: Path | str, settings: Settings | None = None
) -> list[StepDefinition]:
    """Load step definitions from a JSON array file.

    When settings are given, DEFAULT_* values fill in the timeout, retry
    and limit fields an entry does not set itself.

    Raises:
        ValueError: If the file is not a JSON array of valid steps.
    """
    raw = Path(path).expanduser().read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of step definitions")
    if settings is not None:
        defaults = step_defaults(settings)
        for entry in data:
            if not isinstance(entry, dict):
                continue
            entry.setdefault("timeout_s", defaults["timeout_s"])
            for key in ("retry", "limits"):
                merged = dict(defaults[key])
                merged.update(entry.get(key) or {})
                entry[key] = merged
    return _STEP_LIST.validate_python(data)
