"""Extract missing-capability requests from planner failure diagnostics.

A diagnostic is free text that may embed one JSON array of helper objects,
for example::

    Unable to create plan. Additional helpers may be required:
    [{"Name": "PiDigits", "Description": "...", "Inputs": [...], "Outputs": {...}}]

The grammar is deliberately small: a candidate block starts at ``[``
followed by ``{``. Candidates that are not a JSON array of objects are
prose and skipped. Exactly one distinct decoded block is actionable, and
every element must be a valid CapabilityGapRequest.
"""

import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from .models import CapabilityGapRequest, DiagnosticAnalysis, DiagnosticKind

logger = logging.getLogger(__name__)

_BLOCK_START = re.compile(r"\[\s*\{")

HALLUCINATION_MARKERS = ("hallucinatedhelpers", "hallucinated")


class GapExtractor:
    """Parses planner diagnostics into typed gap lists. Pure and never raises."""

    def __init__(self, hallucination_markers: tuple[str, ...] = HALLUCINATION_MARKERS):
        self.hallucination_markers = tuple(marker.lower() for marker in hallucination_markers)
        self._decoder = json.JSONDecoder()

    def extract(self, diagnostic: Optional[str]) -> Optional[list[CapabilityGapRequest]]:
        """Return the embedded gap list, or None when nothing is actionable."""
        if not diagnostic:
            return None
        blocks = self._find_blocks(diagnostic)

        if len(blocks) != 1:
            if blocks:
                logger.debug("Diagnostic contains %d distinct gap blocks", len(blocks))
            return None

        entries = blocks[0]
        if not entries:
            return None
        try:
            return [CapabilityGapRequest.model_validate(entry) for entry in entries]
        except ValidationError as e:
            logger.debug("Gap block failed validation: %s", e)
            return None

    def analyze(self, diagnostic: Optional[str]) -> DiagnosticAnalysis:
        """Classify a diagnostic as a recoverable gap or a terminal failure."""
        gaps = self.extract(diagnostic)
        if gaps:
            return DiagnosticAnalysis(kind=DiagnosticKind.RECOVERABLE_GAP, gaps=gaps)
        text = (diagnostic or "").lower()
        if any(marker in text for marker in self.hallucination_markers):
            return DiagnosticAnalysis(kind=DiagnosticKind.HALLUCINATED_CAPABILITY)
        return DiagnosticAnalysis(kind=DiagnosticKind.MALFORMED_DIAGNOSTIC)

    def _find_blocks(self, text: str) -> list[list[Any]]:
        """Decode every candidate array; non-JSON candidates are skipped."""
        blocks: list[list[Any]] = []
        position = 0
        while True:
            match = _BLOCK_START.search(text, position)
            if match is None:
                break
            try:
                value, end = self._decoder.raw_decode(text, match.start())
            except json.JSONDecodeError:
                logger.debug("Skipping undecodable candidate at offset %d", match.start())
                position = match.end()
                continue
            position = end
            if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
                continue
            if value not in blocks:
                blocks.append(value)
        return blocks


_default_extractor = GapExtractor()


def extract_gaps(diagnostic: Optional[str]) -> Optional[list[CapabilityGapRequest]]:
    """Module-level shortcut for GapExtractor().extract."""
    return _default_extractor.extract(diagnostic)
