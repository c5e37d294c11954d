"""
Report serialization.

DataSynthesizer is a pure transformer over a frozen ExtractionLog: the
same log always yields byte-identical JSONL, CSV, Markdown and raw
output. Only to_json() includes run timing, taken from the Report.
"""

import csv
import io
import json
from pathlib import Path
from typing import Any, Iterable

from web_harvest.core.exceptions import HarvestError
from web_harvest.crawler.models import Discovery, DiscoveryKind, ExtractionLog, Report
from web_harvest.utils.fs import atomic_write_text
from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)

# Format name -> file written by write()
OUTPUT_FILES = {
    "json": "report.json",
    "jsonl": "links.jsonl",
    "csv": "links.csv",
    "txt": "links.txt",
    "md": "report.md",
}

BASE_COLUMNS = ["url", "kind", "source"]

KIND_HEADINGS = {
    DiscoveryKind.LINK: "Links",
    DiscoveryKind.IMAGE: "Images",
    DiscoveryKind.VIDEO: "Videos",
    DiscoveryKind.AUDIO: "Audio",
    DiscoveryKind.TEXT: "Text",
    DiscoveryKind.REQUEST: "Requests",
}


def flatten_metadata(metadata: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """
    Flatten nested metadata into dotted string columns.

    Nested dicts become ``parent.child`` keys; lists and non-string
    scalars are JSON-encoded; None becomes "".
    """
    flat: dict[str, str] = {}
    for key in sorted(metadata):
        value = metadata[key]
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_metadata(value, prefix=f"{name}."))
        elif value is None:
            flat[name] = ""
        elif isinstance(value, str):
            flat[name] = value
        else:
            flat[name] = json.dumps(value, sort_keys=True, ensure_ascii=False)
    return flat


def _markdown_text(value: str) -> str:
    return value.replace("\n", " ").replace("[", "\\[").replace("]", "\\]").strip()


def _link_target(url: str) -> str:
    """Angle-bracket link destination; spaces and parentheses survive inside <>."""
    return url.replace(" ", "%20").replace("<", "%3C").replace(">", "%3E")


class DataSynthesizer:
    """
    Serializes an extraction log into report formats.

    Example:
        >>> synthesizer = DataSynthesizer(report.extraction_log, report)
        >>> synthesizer.write("./output", ["jsonl", "csv", "md"])
        [PosixPath('output/links.jsonl'), PosixPath('output/links.csv'), PosixPath('output/report.md')]
    """

    def __init__(self, log: ExtractionLog, report: Report | None = None) -> None:
        self.log = log
        self.report = report

    @property
    def discoveries(self) -> tuple[Discovery, ...]:
        return self.log.discoveries

    def to_jsonl(self) -> str:
        """One Discovery per line with stable key order."""
        lines = [
            json.dumps(discovery.to_dict(), ensure_ascii=False)
            for discovery in self.discoveries
        ]
        return "\n".join(lines) + ("\n" if lines else "")

    @staticmethod
    def from_jsonl(text: str) -> list[Discovery]:
        """Parse to_jsonl() output back into Discoveries."""
        return [
            Discovery.from_dict(json.loads(line))
            for line in text.splitlines()
            if line.strip()
        ]

    def to_csv(self) -> str:
        """
        RFC 4180 CSV.

        Header is ``url,kind,source`` followed by the sorted union of
        flattened metadata keys; missing values are empty. Metadata keys
        that clash with a base column are written as ``metadata.<key>``.
        """
        rows = []
        metadata_keys: set[str] = set()
        for discovery in self.discoveries:
            flat = flatten_metadata(discovery.metadata)
            metadata_keys.update(flat)
            rows.append((discovery, flat))

        headers = {key: f"metadata.{key}" if key in BASE_COLUMNS else key for key in metadata_keys}
        columns = sorted(metadata_keys, key=headers.__getitem__)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\r\n")
        writer.writerow(BASE_COLUMNS + [headers[column] for column in columns])
        for discovery, flat in rows:
            writer.writerow(
                [discovery.url, discovery.kind.value, discovery.source]
                + [flat.get(column, "") for column in columns]
            )
        return buffer.getvalue()

    def to_markdown(self) -> str:
        """Discoveries grouped by kind, one bullet each, titled where known."""
        lines = ["# Discovery Report", "", f"**Total discoveries:** {len(self.log)}", ""]

        counts = self.log.count_by_kind()
        lines.append("## Summary")
        lines.append("")
        for kind in DiscoveryKind:
            if counts[kind.value]:
                lines.append(f"- **{kind.value}**: {counts[kind.value]}")
        lines.append("")

        for kind in DiscoveryKind:
            group = self.log.by_kind(kind)
            if not group:
                continue
            lines.append(f"## {KIND_HEADINGS[kind]}")
            lines.append("")
            for discovery in group:
                title = self._title(discovery)
                target = _link_target(discovery.url)
                if title:
                    lines.append(f"- [{_markdown_text(title)}](<{target}>) (phase {discovery.source})")
                else:
                    lines.append(f"- <{target}> (phase {discovery.source})")
            lines.append("")

        return "\n".join(lines)

    @staticmethod
    def _title(discovery: Discovery) -> str:
        for key in ("title", "text", "alt", "caption"):
            value = discovery.metadata.get(key)
            if isinstance(value, str) and value.strip():
                return value
        return ""

    def to_raw(self) -> str:
        """URLs only, newline-separated, deduplicated in insertion order."""
        urls = list(dict.fromkeys(discovery.url for discovery in self.discoveries))
        return "\n".join(urls) + ("\n" if urls else "")

    def to_json(self) -> str:
        """The full report (or the bare log when no report is attached)."""
        data = self.report.to_dict() if self.report is not None else self.log.to_dict()
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    def to_instruction_jsonl(self) -> str:
        """
        Instruction-tuning records, one per link discovery.

        Each line holds ``instruction``, ``context`` (phase, interaction,
        index), ``response`` and ``metadata`` (url, text).
        """
        interactions = {
            phase.index: phase.interaction.describe() if phase.interaction else "navigate"
            for phase in self.log.phases
        }

        lines = []
        for index, discovery in enumerate(self.log.by_kind(DiscoveryKind.LINK)):
            interaction = interactions.get(discovery.source, "initial load")
            text = discovery.metadata.get("text") or ""
            title = discovery.metadata.get("title") or "N/A"
            record = {
                "instruction": (
                    f"Extract and validate the hyperlink discovered during {interaction} "
                    f"at crawl phase {discovery.source}. "
                    "Provide the URL, anchor text, and contextual metadata."
                ),
                "context": {
                    "phase": discovery.source,
                    "interaction": interaction,
                    "index": index,
                },
                "response": (
                    f"Found hyperlink: {discovery.url}\n"
                    f"Anchor text: \"{text}\"\n"
                    f"Title attribute: \"{title}\"\n"
                    f"Discovery phase: {discovery.source}\n"
                    f"Interaction type: {interaction}"
                ),
                "metadata": {"url": discovery.url, "text": text},
            }
            lines.append(json.dumps(record, ensure_ascii=False))
        return "\n".join(lines) + ("\n" if lines else "")

    def render(self, fmt: str) -> str:
        """Render one format by name (json, jsonl, csv, txt, md)."""
        renderers = {
            "json": self.to_json,
            "jsonl": self.to_jsonl,
            "csv": self.to_csv,
            "txt": self.to_raw,
            "md": self.to_markdown,
        }
        if fmt not in renderers:
            raise HarvestError(f"Unknown export format: {fmt}", details={"supported": sorted(renderers)})
        return renderers[fmt]()

    def write(self, output_dir: Path | str, formats: Iterable[str]) -> list[Path]:
        """
        Write the chosen formats into output_dir atomically.

        Returns:
            Paths written, in the order of ``formats``
        """
        output_dir = Path(output_dir)
        written = []
        for fmt in dict.fromkeys(formats):
            content = self.render(fmt)
            path = atomic_write_text(output_dir / OUTPUT_FILES[fmt], content)
            written.append(path)
            logger.info(f"Wrote {fmt} export: {path}")
        return written
