"""
Synthesis module for Web Harvest.

Turns extraction logs into JSON, JSONL, CSV, Markdown and plain URL
lists.
"""

from web_harvest.synthesis.synthesizer import OUTPUT_FILES, DataSynthesizer, flatten_metadata

__all__ = [
    "DataSynthesizer",
    "OUTPUT_FILES",
    "flatten_metadata",
]
